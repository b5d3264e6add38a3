import graphene

from config.graphql.queries import Query
from config.graphql.repository_mutations import Mutation

schema = graphene.Schema(query=Query, mutation=Mutation)
