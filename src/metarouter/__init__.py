"""Declarative HTTP request routing with lazily loaded handlers."""

__version__ = "0.1.0"

from metarouter.asgi import MetaRouterApp, Request, Response
from metarouter.chain import Chain, build_chain
from metarouter.decorators import route_meta, route_middleware
from metarouter.descriptor import normalize
from metarouter.errors import (
    ConfigurationError,
    DecodeFailure,
    InvalidDescriptor,
    InvalidHandler,
    InvalidMiddleware,
    LoaderFailure,
    MetaRouterError,
    MissingHandler,
    MissingPath,
    NotConfigured,
    PatternError,
    RouteFileError,
)
from metarouter.loader import default_loader, load_routes
from metarouter.matcher import Matcher, build_matcher, build_matcher_async
from metarouter.pattern import MatchOptions, compile_pattern
from metarouter.route import CompiledRoute, MatchResult
from metarouter.router import Router

__all__ = [
    "Chain",
    "CompiledRoute",
    "ConfigurationError",
    "DecodeFailure",
    "InvalidDescriptor",
    "InvalidHandler",
    "InvalidMiddleware",
    "LoaderFailure",
    "MatchOptions",
    "MatchResult",
    "Matcher",
    "MetaRouterApp",
    "MetaRouterError",
    "MissingHandler",
    "MissingPath",
    "NotConfigured",
    "PatternError",
    "Request",
    "Response",
    "RouteFileError",
    "Router",
    "build_chain",
    "build_matcher",
    "build_matcher_async",
    "compile_pattern",
    "default_loader",
    "load_routes",
    "normalize",
    "route_meta",
    "route_middleware",
]
