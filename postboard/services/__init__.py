# Services package.
#
# Each module exposes async functions that hold the business logic for
# one area of the API:
#
#   post_service  — cursor-paginated feed + post authoring
#   vote_service  — vote state machine + post score maintenance
#   user_service  — registration, login, password reset
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.
