# -*- coding: utf-8 -*-
"""
Created on Sat Mar  7 17:55:03 2026

@author: Vineet
"""

# set_plan.py  (backend root, next to main.py)
"""
Move a user onto a plan from the command line, bypassing payments.

Usage:
  DATABASE_URL=postgresql://... python set_plan.py --email someone@mail.com --plan gold
  python set_plan.py --email someone@mail.com --plan free      # cancel back to free
"""

import argparse

from db import SessionLocal, User
from tiers import Tier, UnknownPlanError
import subscriptions


def main(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True)
    parser.add_argument("--plan", required=True, choices=[t.value for t in Tier])
    args = parser.parse_args(argv)

    try:
        tier = Tier.parse(args.plan)
    except UnknownPlanError as e:
        raise SystemExit(str(e))

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == args.email.strip().lower()).first()
        if user is None:
            raise SystemExit(f"User not found: {args.email}")
        if tier is Tier.FREE:
            subscriptions.cancel(db, user)
        else:
            subscriptions.activate(db, user, tier, order_id="cli")
        db.commit()
        print(f"OK: {user.email} -> plan={tier.value} expiry={user.subscription_expiry}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
