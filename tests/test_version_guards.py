"""
Compare-and-swap version claims used by every write-back.
"""
import pytest

from staging.models.tournament import Tournament
from staging.utils.version_guards import ConcurrentRecalculationError, claim_version


def test_claim_moves_version_forward(session):
    t = Tournament(name="CAS Open")
    session.add(t)
    session.commit()

    assert claim_version(session, Tournament, t.id, "ordering_version", 0) == 1
    assert claim_version(session, Tournament, t.id, "ordering_version", 1) == 2
    session.commit()

    session.expire_all()
    assert session.get(Tournament, t.id).ordering_version == 2


def test_stale_claim_is_rejected(session):
    t = Tournament(name="CAS Open")
    session.add(t)
    session.commit()
    claim_version(session, Tournament, t.id, "ordering_version", 0)
    session.commit()

    with pytest.raises(ConcurrentRecalculationError, match="ordering_version=0"):
        claim_version(session, Tournament, t.id, "ordering_version", 0)


def test_missing_row_is_rejected(session):
    with pytest.raises(ConcurrentRecalculationError):
        claim_version(session, Tournament, 999, "ordering_version", 0)
