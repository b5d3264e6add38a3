from typing_extensions import NotRequired, TypedDict


class CaseDataPythonType(TypedDict):
    priority: str
    status: str
    type: str
    caseKey: str | None


class TreeNodePythonType(TypedDict):
    """
    One node of the assembled test repository tree. Suites and sections
    always carry a ``children`` list (possibly empty); cases carry ``data``
    instead.
    """

    id: str
    name: str
    type: str
    displayOrder: int
    children: NotRequired[list["TreeNodePythonType"]]
    data: NotRequired[CaseDataPythonType]


class RepositoryTreePythonType(TypedDict):
    """
    What a fetch returns: the nested forest, the flat list of unfiled cases,
    and any section subtrees that could not be attached because their parent
    pointers form a cycle.
    """

    tree: list[TreeNodePythonType]
    unfiled: list[TreeNodePythonType]
    orphaned: list[TreeNodePythonType]


class ItemResultPythonType(TypedDict):
    id: str
    kind: str
    status: str
    reason: str
