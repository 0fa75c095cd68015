"""Errors raised by the dependency graph services.

Mutations raise before anything is written; the HTTP layer maps
``ValidationError`` and ``CyclicDependencyError`` to 400 and
``NotFoundError`` to 404.
"""


class DependencyError(Exception):
    """Base class for every dependency graph error."""


class ValidationError(DependencyError):
    """The requested edge breaks a structural rule."""


class InvalidDependencyError(ValidationError):
    pass


class CrossProjectDependencyError(ValidationError):
    pass


class DuplicateDependencyError(ValidationError):
    pass


class CyclicDependencyError(DependencyError):
    def __init__(self, dependent, prerequisite):
        self.dependent = dependent
        self.prerequisite = prerequisite
        super().__init__(
            f"Making '{dependent}' depend on '{prerequisite}' would create a circular dependency"
        )


class NotFoundError(DependencyError):
    pass
