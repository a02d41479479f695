"""Entity catalogue and the fixed migration plan."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple


class EntityRole(str, Enum):
    """How an entity step obtains its rows."""
    COPY = "copy"  # Paginated source -> destination insert
    AGAIN = "again"  # No source rows, cross-reference fix-ups only
    FIXED_LIST = "fixed-list"  # Rows generated in process


class Entity(str, Enum):
    """Logical resources migrated one step at a time."""
    CATEGORIES = "categories"
    GROUPS = "groups"
    USERS = "users"
    FORUMS = "forums"
    FORUM_PERMS = "forum_perms"
    BBCODE = "bbcode"
    CENSORING = "censoring"
    SMILIES = "smilies"
    TOPICS = "topics"
    POSTS = "posts"
    TOPICS_AGAIN = "topics_again"
    FORUMS_AGAIN = "forums_again"
    WARNINGS = "warnings"
    REPORTS = "reports"
    FORUM_SUBSCRIPTIONS = "forum_subscriptions"
    TOPIC_SUBSCRIPTIONS = "topic_subscriptions"
    MARK_OF_FORUM = "mark_of_forum"
    MARK_OF_TOPIC = "mark_of_topic"
    POLL = "poll"
    POLL_VOTED = "poll_voted"
    PM_TOPICS = "pm_topics"
    PM_POSTS = "pm_posts"
    PM_TOPICS_AGAIN = "pm_topics_again"
    PM_BLOCK = "pm_block"
    BANS = "bans"
    CONFIG = "config"
    PROVIDERS = "providers"
    PROVIDERS_USERS = "providers_users"
    ATTACHMENTS = "attachments"
    ATTACHMENTS_POS = "attachments_pos"
    ATTACHMENTS_POS_PM = "attachments_pos_pm"
    REACTIONS = "reactions"
    DRAFTS = "drafts"
    OTHER_AGAIN = "other_again"


@dataclass(frozen=True)
class EntitySpec:
    """Position and properties of one entity in the migration plan."""
    step: int
    entity: Entity
    role: EntityRole = EntityRole.COPY
    depends_on: Tuple[Entity, ...] = ()
    destination_only: bool = False  # Skipped in merge mode

    @property
    def name(self) -> str:
        return self.entity.value


SCHEMA_SETUP_STEP = 0
END_OF_MIGRATION = -1

E = Entity
R = EntityRole

MIGRATION_PLAN: List[EntitySpec] = [
    EntitySpec(1, E.CATEGORIES),
    EntitySpec(2, E.GROUPS),
    EntitySpec(3, E.USERS, depends_on=(E.GROUPS,)),
    EntitySpec(4, E.FORUMS, depends_on=(E.CATEGORIES, E.USERS)),
    EntitySpec(5, E.FORUM_PERMS, depends_on=(E.GROUPS, E.FORUMS)),
    EntitySpec(6, E.BBCODE),
    EntitySpec(7, E.CENSORING),
    EntitySpec(8, E.SMILIES),
    EntitySpec(9, E.TOPICS, depends_on=(E.FORUMS,)),
    EntitySpec(10, E.POSTS, depends_on=(E.TOPICS, E.USERS)),
    EntitySpec(11, E.TOPICS_AGAIN, R.AGAIN, depends_on=(E.TOPICS, E.POSTS)),
    EntitySpec(12, E.FORUMS_AGAIN, R.AGAIN, depends_on=(E.FORUMS, E.TOPICS_AGAIN)),
    EntitySpec(13, E.WARNINGS, depends_on=(E.POSTS, E.USERS)),
    EntitySpec(14, E.REPORTS, depends_on=(E.POSTS, E.TOPICS, E.FORUMS, E.USERS)),
    EntitySpec(15, E.FORUM_SUBSCRIPTIONS, depends_on=(E.USERS, E.FORUMS)),
    EntitySpec(16, E.TOPIC_SUBSCRIPTIONS, depends_on=(E.USERS, E.TOPICS)),
    EntitySpec(17, E.MARK_OF_FORUM, depends_on=(E.USERS, E.FORUMS)),
    EntitySpec(18, E.MARK_OF_TOPIC, depends_on=(E.USERS, E.TOPICS)),
    EntitySpec(19, E.POLL, depends_on=(E.TOPICS,)),
    EntitySpec(20, E.POLL_VOTED, depends_on=(E.TOPICS, E.USERS)),
    EntitySpec(21, E.PM_TOPICS, depends_on=(E.USERS,)),
    EntitySpec(22, E.PM_POSTS, depends_on=(E.PM_TOPICS, E.USERS)),
    EntitySpec(23, E.PM_TOPICS_AGAIN, R.AGAIN, depends_on=(E.PM_TOPICS, E.PM_POSTS)),
    EntitySpec(24, E.PM_BLOCK, depends_on=(E.USERS,)),
    EntitySpec(25, E.BANS, depends_on=(E.USERS,)),
    EntitySpec(26, E.CONFIG, R.FIXED_LIST, destination_only=True),
    EntitySpec(27, E.PROVIDERS),
    EntitySpec(28, E.PROVIDERS_USERS, depends_on=(E.PROVIDERS, E.USERS)),
    EntitySpec(29, E.ATTACHMENTS, depends_on=(E.USERS,)),
    EntitySpec(30, E.ATTACHMENTS_POS, depends_on=(E.ATTACHMENTS, E.POSTS)),
    EntitySpec(31, E.ATTACHMENTS_POS_PM, depends_on=(E.ATTACHMENTS, E.PM_POSTS)),
    EntitySpec(32, E.REACTIONS, depends_on=(E.POSTS, E.USERS)),
    EntitySpec(33, E.DRAFTS, depends_on=(E.USERS, E.TOPICS, E.FORUMS)),
    EntitySpec(34, E.OTHER_AGAIN, R.AGAIN, depends_on=(E.USERS, E.TOPICS)),
]

CLEANUP_STEP = len(MIGRATION_PLAN) + 1

_BY_STEP: Dict[int, EntitySpec] = {spec.step: spec for spec in MIGRATION_PLAN}
_BY_ENTITY: Dict[Entity, EntitySpec] = {spec.entity: spec for spec in MIGRATION_PLAN}


def spec_for_step(step: int) -> Optional[EntitySpec]:
    """Get the entity scheduled at a step, or None for the schema steps."""
    return _BY_STEP.get(step)


def spec_for_entity(entity: Entity) -> EntitySpec:
    """Get the plan entry of an entity."""
    return _BY_ENTITY[entity]


def step_name(step: int) -> str:
    """Human readable name of a step number."""
    if step == SCHEMA_SETUP_STEP:
        return "schema setup"
    if step == CLEANUP_STEP:
        return "schema cleanup"
    if step == END_OF_MIGRATION:
        return "done"
    spec = spec_for_step(step)
    return spec.name if spec else f"step {step}"


def plan_is_ordered(plan: Optional[List[EntitySpec]] = None) -> bool:
    """
    Check that every entity runs after the entities it references.

    Args:
        plan: Plan to check, defaults to MIGRATION_PLAN

    Returns:
        True if steps are contiguous from 1 and all dependencies come earlier
    """
    plan = plan if plan is not None else MIGRATION_PLAN
    positions = {spec.entity: spec.step for spec in plan}

    for index, spec in enumerate(plan, start=1):
        if spec.step != index:
            return False
        for dependency in spec.depends_on:
            if dependency not in positions or positions[dependency] >= spec.step:
                return False
    return True
