import logging

import graphene
from graphene.types.generic import GenericScalar
from graphql import GraphQLError
from graphql_jwt.decorators import login_required
from graphql_relay import from_global_id

from casetreeserver.repository.service import CaseRepositoryService
from casetreeserver.shared.errors import RepositoryError
from config.graphql.graphene_types import globalize_tree_nodes

logger = logging.getLogger(__name__)


def resolve_pk(global_or_raw_id):
    """Accept a relay global id or a bare primary key."""
    if not global_or_raw_id:
        return global_or_raw_id
    _type, pk = from_global_id(global_or_raw_id)
    return pk or global_or_raw_id


class Query(graphene.ObjectType):
    repository_tree = GenericScalar(
        project_id=graphene.ID(required=True),
        description=(
            "Nested test repository of a project: "
            "{tree, unfiled, orphaned} with relay global ids on every node"
        ),
    )

    @login_required
    def resolve_repository_tree(self, info, project_id):
        try:
            result = CaseRepositoryService.get_repository_tree(
                info.context.user, resolve_pk(project_id)
            )
        except RepositoryError as e:
            raise GraphQLError(e.message, extensions={"code": e.code})

        return {key: globalize_tree_nodes(nodes) for key, nodes in result.items()}
