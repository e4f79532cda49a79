"""
Scope resolution: turns a billing config into the exact set of students it targets.

ALL_STUDENTS      -> every active student of the config's school + cycle
SPECIFIC_GROUPS   -> active students whose group_id is in target_groups
SPECIFIC_GRADES   -> active students whose group's grade is in target_grades
SPECIFIC_STUDENTS -> target_students still active in the same school + cycle

Every BillingScope member must have a resolver and a target field entry; the module refuses
to import otherwise, so a new scope cannot silently resolve to nobody.
"""

from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.core.enums import BillingScope, RecordStatus
from billing_ledger.core.exceptions import InvalidScopeError
from billing_ledger.core.models import BillingConfig, Group, Student


def _parse_uuids(values: Optional[Iterable]) -> List[UUID]:
    out: List[UUID] = []
    for v in values or []:
        try:
            out.append(v if isinstance(v, UUID) else UUID(str(v)))
        except ValueError:
            continue
    return out


def _active_students_stmt(config: BillingConfig):
    return select(Student.id).where(
        Student.school_id == config.school_id,
        Student.school_cycle_id == config.school_cycle_id,
        Student.status == RecordStatus.ACTIVE.value,
    )


async def _resolve_all_students(db: AsyncSession, config: BillingConfig) -> Set[UUID]:
    result = await db.execute(_active_students_stmt(config))
    return set(result.scalars().all())


async def _resolve_groups(db: AsyncSession, config: BillingConfig) -> Set[UUID]:
    group_ids = _parse_uuids(config.target_groups)
    if not group_ids:
        return set()
    result = await db.execute(_active_students_stmt(config).where(Student.group_id.in_(group_ids)))
    return set(result.scalars().all())


async def _resolve_grades(db: AsyncSession, config: BillingConfig) -> Set[UUID]:
    grades = [str(g) for g in (config.target_grades or []) if str(g).strip()]
    if not grades:
        return set()
    stmt = _active_students_stmt(config).join(Group, Group.id == Student.group_id).where(Group.grade.in_(grades))
    result = await db.execute(stmt)
    return set(result.scalars().all())


async def _resolve_students(db: AsyncSession, config: BillingConfig) -> Set[UUID]:
    student_ids = _parse_uuids(config.target_students)
    if not student_ids:
        return set()
    result = await db.execute(_active_students_stmt(config).where(Student.id.in_(student_ids)))
    return set(result.scalars().all())


_RESOLVERS: Dict[BillingScope, Callable[[AsyncSession, BillingConfig], Awaitable[Set[UUID]]]] = {
    BillingScope.ALL_STUDENTS: _resolve_all_students,
    BillingScope.SPECIFIC_GROUPS: _resolve_groups,
    BillingScope.SPECIFIC_GRADES: _resolve_grades,
    BillingScope.SPECIFIC_STUDENTS: _resolve_students,
}

# Target list each scope reads; None means the scope needs no target list.
TARGET_FIELDS: Dict[BillingScope, Optional[str]] = {
    BillingScope.ALL_STUDENTS: None,
    BillingScope.SPECIFIC_GROUPS: "target_groups",
    BillingScope.SPECIFIC_GRADES: "target_grades",
    BillingScope.SPECIFIC_STUDENTS: "target_students",
}

_unhandled = [s.value for s in BillingScope if s not in _RESOLVERS or s not in TARGET_FIELDS]
if _unhandled:
    raise RuntimeError(f"Billing scopes without a resolver: {', '.join(_unhandled)}")


async def resolve_targets(db: AsyncSession, config: BillingConfig) -> Set[UUID]:
    """Return ids of the active students targeted by config. Unknown scope or empty target list -> empty set."""
    try:
        scope = BillingScope(config.scope)
    except ValueError:
        return set()
    return await _RESOLVERS[scope](db, config)


def requested_student_ids(config: BillingConfig) -> Set[UUID]:
    """Explicit student targets of a SPECIFIC_STUDENTS config (before the active/cycle filter)."""
    if config.scope != BillingScope.SPECIFIC_STUDENTS.value:
        return set()
    return set(_parse_uuids(config.target_students))


def normalize_targets(
    scope: BillingScope,
    target_groups: Optional[Iterable] = None,
    target_grades: Optional[Iterable] = None,
    target_students: Optional[Iterable] = None,
) -> Dict[str, List[str]]:
    """
    Validate that scope carries its matching target list and clear the other lists.
    Raises InvalidScopeError when the matching list is empty. Values are de-duplicated and
    stored as strings (JSON columns).
    """
    raw = {
        "target_groups": [str(g) for g in _parse_uuids(target_groups)],
        "target_grades": [str(g).strip() for g in (target_grades or []) if str(g).strip()],
        "target_students": [str(s) for s in _parse_uuids(target_students)],
    }
    field = TARGET_FIELDS[scope]
    normalized = {key: [] for key in raw}
    if field is not None:
        values = list(dict.fromkeys(raw[field]))
        if not values:
            label = field.replace("target_", "")
            raise InvalidScopeError(f"Scope {scope.value} requires at least one entry in {label}")
        normalized[field] = values
    return normalized
