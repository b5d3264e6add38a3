
import graphene
from graphene import relay
from graphene_django import DjangoObjectType
from graphql_relay import to_global_id

from casetreeserver.projects.models import Organization, Project
from casetreeserver.repository.models import Case, Section, Suite
from casetreeserver.types.enums import NodeKind


# Tree node kind -> GraphQL type name used for relay global ids
NODE_TYPE_NAMES = {
    NodeKind.SUITE.value: "SuiteType",
    NodeKind.SECTION.value: "SectionType",
    NodeKind.CASE.value: "CaseType",
}


def globalize_tree_nodes(nodes: list) -> list:
    """
    Rewrite the ``id`` of every node (recursively) from a raw primary key to a
    relay global id, so clients can pass tree ids straight back into mutations.
    """
    converted = []
    for node in nodes:
        node = {**node, "id": to_global_id(NODE_TYPE_NAMES[node["type"]], node["id"])}
        if "children" in node:
            node["children"] = globalize_tree_nodes(node["children"])
        converted.append(node)
    return converted


class OrganizationType(DjangoObjectType):
    class Meta:
        model = Organization
        interfaces = [relay.Node]
        fields = ("id", "name", "slug", "created")


class ProjectType(DjangoObjectType):
    class Meta:
        model = Project
        interfaces = [relay.Node]
        fields = (
            "id",
            "organization",
            "name",
            "key",
            "description",
            "display_order",
            "created",
            "modified",
        )


class SuiteType(DjangoObjectType):
    """A top-level container of sections inside a project."""

    class Meta:
        model = Suite
        interfaces = [relay.Node]
        fields = (
            "id",
            "project",
            "name",
            "description",
            "display_order",
            "created",
            "modified",
        )


class SectionType(DjangoObjectType):
    """
    A folder that can sit under a suite, under another section, or at the
    project root.
    """

    class Meta:
        model = Section
        interfaces = [relay.Node]
        fields = (
            "id",
            "project",
            "suite",
            "parent",
            "name",
            "description",
            "display_order",
            "created",
            "modified",
        )


class CaseType(DjangoObjectType):
    case_type = graphene.String(description="functional, smoke or regression")
    priority = graphene.String(description="low, medium, high or critical")
    status = graphene.String(description="draft, active or deprecated")

    class Meta:
        model = Case
        interfaces = [relay.Node]
        fields = (
            "id",
            "project",
            "section",
            "title",
            "description",
            "preconditions",
            "case_type",
            "priority",
            "status",
            "case_number",
            "case_key",
            "display_order",
            "created",
            "modified",
        )


class ReorderItemInput(graphene.InputObjectType):
    """
    One entry of a reorder batch. Omit a linkage field to leave it unchanged;
    send null to clear it.
    """

    id = graphene.ID(required=True)
    kind = graphene.String(required=True, description="suite, section or case")
    display_order = graphene.Int(required=True)
    suite_id = graphene.ID(description="Sections only: new suite")
    parent_id = graphene.ID(description="Sections only: new parent section")
    section_id = graphene.ID(description="Cases only: new section")


class ReorderItemResultType(graphene.ObjectType):
    id = graphene.ID()
    kind = graphene.String()
    status = graphene.String(description="applied, skipped or failed")
    reason = graphene.String()
