"""
Transaction boundary and optimistic-lock retry tests.
"""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from millstock.models import Product, Supplier
from millstock.services.concurrency import run_atomic, run_with_retry


class TestRunWithRetry:

    def test_retries_stale_data_then_succeeds(self, db_session):
        calls = []

        def op():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_with_retry(op, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_gives_up_after_attempts(self, db_session):
        calls = []

        def op():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(op, attempts=2, backoff_base=0)
        assert len(calls) == 2

    def test_operational_error_is_not_retried(self, db_session):
        calls = []

        def op():
            calls.append(1)
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(op, attempts=3, backoff_base=0)
        assert len(calls) == 1


class TestRunAtomic:

    def test_commits_on_success(self, db_session):
        run_atomic(lambda uow: uow.add(Supplier(name="Isabela Growers")))

        db_session.expire_all()
        assert db_session.query(Supplier).filter_by(name="Isabela Growers").count() == 1

    def test_rolls_back_on_error(self, db_session):
        def op(uow):
            uow.add(Supplier(name="Half Written"))
            uow.flush()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run_atomic(op)

        assert db_session.query(Supplier).filter_by(name="Half Written").count() == 0

    def test_actor_is_exposed_to_the_unit_of_work(self, db_session):
        assert run_atomic(lambda uow: uow.actor, actor="night-shift") == "night-shift"

    def test_concurrent_writer_is_retried_against_fresh_rows(self, db_session, palay):
        calls = []

        def op(uow):
            product = uow.product(palay.id)
            if not calls:
                # Another writer bumps the version between our read and our write
                uow.session.execute(
                    update(Product.__table__)
                    .where(Product.__table__.c.id == palay.id)
                    .values(version_id=Product.__table__.c.version_id + 1)
                )
            calls.append(1)
            product.reorder_point = 20
            uow.flush()

        run_atomic(op)

        assert len(calls) == 2
        db_session.expire_all()
        assert db_session.get(Product, palay.id).reorder_point == 20
