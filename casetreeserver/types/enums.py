import enum


class NodeKind(str, enum.Enum):
    SUITE = "suite"
    SECTION = "section"
    CASE = "case"


class MemberRole(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

    @classmethod
    def write_roles(cls) -> frozenset["MemberRole"]:
        return frozenset({cls.OWNER, cls.ADMIN, cls.MEMBER})


class MissingItemPolicy(str, enum.Enum):
    """What a reorder batch does with an id that does not resolve."""

    SKIP = "skip"
    REJECT = "reject"


class ItemStatus(str, enum.Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"
