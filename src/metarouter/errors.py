"""metarouter exception hierarchy.

Build-time errors derive from :class:`ConfigurationError` and abort the whole
matcher build. Handler resolution errors are raised the first time a deferred
route is invoked and then cached on the route.
"""

from __future__ import annotations

from typing import Any


class MetaRouterError(Exception):
    """Base for all metarouter errors."""


class ConfigurationError(MetaRouterError):
    """Raised while building a matcher from route descriptors."""


class MissingPath(ConfigurationError):  # noqa: N818
    def __init__(self, descriptor: Any) -> None:
        self.descriptor = descriptor
        super().__init__(f"A route path is required. Route config: {descriptor!r}")


class MissingHandler(ConfigurationError):  # noqa: N818
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"A route handler or middleware is required for path {path!r}")


class InvalidMiddleware(ConfigurationError):  # noqa: N818
    def __init__(self, entry: Any, reason: str = "Function expected") -> None:
        self.entry = entry
        super().__init__(f"Invalid middleware. {reason}. Config: {entry!r}")


class InvalidDescriptor(ConfigurationError):  # noqa: N818
    """The route descriptor has the wrong shape or field types."""


class PatternError(ConfigurationError):
    """A path pattern could not be compiled."""


class RouteFileError(ConfigurationError):
    """A route file could not be read, parsed or substituted."""


class InvalidHandler(MetaRouterError):  # noqa: N818
    """A handler did not resolve to a callable."""

    def __init__(self, module_id: str, export: str | None = None, *, message: str | None = None) -> None:
        self.module_id = module_id
        self.export = export
        if message is None:
            detail = f' with export "{export}"' if export else ""
            message = f'Unable to load a handler from module "{module_id}"{detail}'
        super().__init__(message)


class LoaderFailure(MetaRouterError):  # noqa: N818
    """The handler loader raised or its awaitable was rejected."""

    def __init__(self, module_id: str, cause: BaseException) -> None:
        self.module_id = module_id
        super().__init__(f'Failed to load module "{module_id}": {cause}')
        self.__cause__ = cause


class DecodeFailure(MetaRouterError):  # noqa: N818
    """A captured path segment is not valid percent-encoded UTF-8."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Unable to decode path segment {value!r}")


class NotConfigured(MetaRouterError):  # noqa: N818
    def __init__(self) -> None:
        super().__init__("Router.configure() must be called before matching requests")
