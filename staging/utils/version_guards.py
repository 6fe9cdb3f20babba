"""
Single-writer guards for recalculation write-back.

Every write-back of derived data (match ordering, standings) first moves a
version counter forward with a compare-and-swap UPDATE. A caller that read
version N only wins if the row still holds N; otherwise someone else wrote in
between and the caller must roll back.
"""
from typing import Type

from sqlalchemy import update
from sqlmodel import Session, SQLModel


class ConcurrentRecalculationError(Exception):
    """Another recalculation wrote the same scope since our snapshot was taken"""

    pass


def claim_version(session: Session, model: Type[SQLModel], row_id: int, column: str, seen_version: int) -> int:
    """
    Bump `model.<column>` from seen_version to seen_version + 1.

    Returns:
        The new version

    Raises:
        ConcurrentRecalculationError: the stored version is no longer seen_version
    """
    version_column = getattr(model, column)
    result = session.execute(
        update(model)
        .where(model.id == row_id, version_column == seen_version)
        .values({column: seen_version + 1})
    )
    if result.rowcount != 1:
        raise ConcurrentRecalculationError(
            f"{model.__name__} {row_id} was recalculated concurrently (expected {column}={seen_version})"
        )
    return seen_version + 1
