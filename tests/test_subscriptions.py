"""
Unit tests for the subscription lifecycle
"""
from datetime import datetime, timedelta

from db import Subscription, User
from tiers import Tier, UNLIMITED_WATCH
import subscriptions


def active_rows(db, user):
    return db.query(Subscription).filter(Subscription.user_id == user.id, Subscription.status == "ACTIVE").all()


class TestActivate:
    """Switching plans after a payment"""

    def test_signup_starts_on_free(self, db_session, user):
        rows = active_rows(db_session, user)
        assert len(rows) == 1
        assert rows[0].plan_type is Tier.FREE
        assert user.current_plan is Tier.FREE
        assert user.watch_time_limit == 5

    def test_activate_supersedes_previous_plan(self, db_session, user):
        subscriptions.activate(db_session, user, Tier.SILVER)
        db_session.commit()
        subscriptions.activate(db_session, user, Tier.GOLD)
        db_session.commit()

        rows = active_rows(db_session, user)
        assert [r.plan_type for r in rows] == [Tier.GOLD]
        assert db_session.query(Subscription).filter(Subscription.status == "CANCELLED").count() == 2

    def test_activate_sets_expiry_and_watch_limit(self, db_session, user):
        now = datetime(2026, 1, 1, 8, 0)
        sub = subscriptions.activate(db_session, user, Tier.YEARLY, order_id="order_9", now=now)
        db_session.commit()

        assert sub.end_date == now + timedelta(days=365)
        assert sub.price == 1999
        assert user.current_plan is Tier.YEARLY
        assert user.subscription_expiry == sub.end_date
        assert user.watch_time_limit == UNLIMITED_WATCH


class TestCancelAndExpire:
    """Leaving a paid plan"""

    def test_cancel_moves_user_to_free(self, db_session, gold_user):
        n = subscriptions.cancel(db_session, gold_user)
        db_session.commit()

        assert n == 1
        assert gold_user.current_plan is Tier.FREE
        assert gold_user.subscription_expiry is None
        assert active_rows(db_session, gold_user) == []

    def test_expire_overdue(self, db_session, gold_user, user):
        sub = active_rows(db_session, gold_user)[0]
        sub.end_date = datetime.utcnow() - timedelta(hours=1)
        db_session.commit()

        assert subscriptions.expire_overdue(db_session) == 1

        db_session.refresh(gold_user)
        assert gold_user.current_plan is Tier.FREE
        assert db_session.get(Subscription, sub.id).status == "EXPIRED"
        # free rows have no end date and are left alone
        assert len(active_rows(db_session, user)) == 1

    def test_nothing_to_expire(self, db_session, gold_user):
        assert subscriptions.expire_overdue(db_session) == 0

    def test_expiring_soon(self, db_session, gold_user):
        now = datetime.utcnow()
        assert subscriptions.expiring_soon(db_session, days=3, now=now) == []
        assert len(subscriptions.expiring_soon(db_session, days=31, now=now)) == 1


class TestWatchTime:
    """Daily watch budget"""

    def test_consume_floors_at_zero(self, db_session, user):
        assert subscriptions.consume_watch_time(db_session, user, 3) == (True, 2)
        assert subscriptions.consume_watch_time(db_session, user, 10) == (False, 0)
        assert not subscriptions.can_watch(user)

    def test_unlimited_users_untouched(self, db_session, gold_user):
        assert subscriptions.consume_watch_time(db_session, gold_user, 500) == (True, UNLIMITED_WATCH)
        assert subscriptions.can_watch(gold_user)

    def test_reset_restores_plan_limit(self, db_session, user, gold_user):
        subscriptions.consume_watch_time(db_session, user, 5)

        assert subscriptions.reset_watch_time(db_session) == 1
        assert db_session.get(User, user.id).watch_time_limit == 5


class TestCatalogAndAnalytics:
    def test_plan_catalog_lists_free_first(self):
        ids = [p["id"] for p in subscriptions.plan_catalog()]
        assert ids[0] == "FREE"
        assert "PREMIUM" not in ids
        assert {"BRONZE", "SILVER", "GOLD", "MONTHLY", "YEARLY"} <= set(ids)

    def test_analytics_groups_by_plan(self, db_session, user, gold_user):
        stats = {row["plan"]: row for row in subscriptions.analytics(db_session)}
        assert stats["free"]["userCount"] == 2
        assert stats["gold"]["revenue"] == 100
