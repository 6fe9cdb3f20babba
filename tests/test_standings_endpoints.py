"""
Standings endpoints and persisted stats recalculation.
"""
import pytest
from sqlalchemy import update
from sqlmodel import Session, select

from staging.models.couple_stats import CoupleStats
from staging.models.stage import StageGroup
from staging.models.tournament import Tournament
from staging.services.stats_service import recalculate_stats
from staging.utils.version_guards import ConcurrentRecalculationError
from tests.factories import seed_tournament


def test_group_standings(client, session):
    seeded = seed_tournament(session)
    c1, c2, c3, c4 = [c.id for c in seeded.couples]

    response = client.get(f"/staging/group/{seeded.group.id}/standings")
    assert response.status_code == 200
    data = response.json()

    assert data["group_id"] == seeded.group.id
    assert data["group_name"] == "Group A"
    # C1 and C4 tie on 3 points; no head-to-head yet, games_diff +7 beats +4
    assert [row["couple_id"] for row in data["standings"]] == [c1, c4, c3, c2]
    assert [row["position"] for row in data["standings"]] == [1, 2, 3, 4]

    leader = data["standings"][0]
    assert leader["couple_name"] == "Couple 1"
    assert leader["total_points"] == 3
    assert leader["games_won"] == 12
    assert leader["games_lost"] == 5
    assert leader["games_diff"] == 7
    assert leader["win_percentage"] == 100.0


def test_group_standings_not_found(client, session):
    assert client.get("/staging/group/999/standings").status_code == 404


def test_recalculate_persists_and_replaces_stats(client, session):
    seeded = seed_tournament(session)
    group_id = seeded.group.id

    response = client.post(f"/staging/tournament/{seeded.tournament.id}/stats/recalculate")
    assert response.status_code == 200
    assert response.json()["groups_recalculated"] == 1

    session.expire_all()
    rows = session.exec(select(CoupleStats).where(CoupleStats.group_id == group_id)).all()
    assert sorted(r.position for r in rows) == [1, 2, 3, 4]
    assert session.get(StageGroup, group_id).stats_version == 1

    # Second run replaces rows instead of appending
    response = client.post(f"/staging/tournament/{seeded.tournament.id}/stats/recalculate?group_id={group_id}")
    assert response.status_code == 200

    session.expire_all()
    rows = session.exec(select(CoupleStats).where(CoupleStats.group_id == group_id)).all()
    assert len(rows) == 4
    assert session.get(StageGroup, group_id).stats_version == 2


def test_tournament_standings_serve_stored_stats(client, session):
    seeded = seed_tournament(session)
    tid = seeded.tournament.id
    c1, c2, c3, c4 = [c.id for c in seeded.couples]

    before = client.get(f"/staging/tournament/{tid}/standings")
    assert before.status_code == 200
    group = before.json()["groups"][0]
    assert group["group_name"] == "Group A"
    assert group["stats"] == []
    assert group["last_updated"] is None

    client.post(f"/staging/tournament/{tid}/stats/recalculate")

    response = client.get(f"/staging/tournament/{tid}/standings", params={"group_id": seeded.group.id})
    assert response.status_code == 200
    data = response.json()
    assert data["tournament_id"] == tid
    assert len(data["groups"]) == 1
    group = data["groups"][0]
    assert group["group_id"] == seeded.group.id
    assert group["last_updated"] is not None
    assert [row["couple_id"] for row in group["stats"]] == [c1, c4, c3, c2]
    assert [row["position"] for row in group["stats"]] == [1, 2, 3, 4]
    # Default group advancement takes the top two
    assert [row["advances"] for row in group["stats"]] == [True, True, False, False]
    assert group["stats"][0]["couple_name"] == "Couple 1"
    assert group["stats"][0]["win_percentage"] == 100.0


def test_tournament_standings_not_found(client, session):
    seeded = seed_tournament(session)
    other = Tournament(name="Other")
    session.add(other)
    session.commit()

    assert client.get("/staging/tournament/999/standings").status_code == 404
    response = client.get(f"/staging/tournament/{other.id}/standings", params={"group_id": seeded.group.id})
    assert response.status_code == 404


def test_recalculate_rejects_unknown_tournament_and_foreign_group(client, session):
    seeded = seed_tournament(session)
    other = Tournament(name="Other")
    session.add(other)
    session.commit()

    assert client.post("/staging/tournament/999/stats/recalculate").status_code == 404
    response = client.post(f"/staging/tournament/{other.id}/stats/recalculate?group_id={seeded.group.id}")
    assert response.status_code == 404


def test_concurrent_recalculation_loses_and_writes_nothing(session):
    seeded = seed_tournament(session)
    group_id = seeded.group.id
    # This session snapshots version 0
    assert session.get(StageGroup, group_id).stats_version == 0

    # Another writer gets there first
    with Session(session.get_bind()) as other:
        other.execute(update(StageGroup).where(StageGroup.id == group_id).values(stats_version=1))
        other.commit()

    with pytest.raises(ConcurrentRecalculationError):
        recalculate_stats(session, seeded.tournament.id, group_id=group_id)

    assert session.exec(select(CoupleStats)).all() == []
