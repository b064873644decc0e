"""
function-spine - serve plain Python functions over HTTP.

Register functions with decorators, then serve one of them:

    import functionspine

    @functionspine.on_startup
    def setup(function, globals, logger):
        globals["greeting"] = "Hello"

    @functionspine.http("hello")
    def hello(request):
        return f"{functionspine.get_global('greeting')}, world!"

    @functionspine.typed("add")
    def add(payload):
        return {"sum": payload["a"] + payload["b"]}

    @functionspine.cloud_event("on_upload")
    def on_upload(event):
        functionspine.current_logger().info("uploaded", subject=event.subject)

    functionspine.run("hello")

or from the shell: ``functionspine --source main.py --target hello``.
"""

__version__ = "0.1.0"

from functionspine.context import current_context, current_logger, get_global
from functionspine.errors import (
    DecodeError,
    ErrorCategory,
    FunctionSpineError,
    GlobalsFrozenError,
    HandlerError,
    LifecycleError,
    RequestError,
    SourceLoadError,
    StartupTaskError,
    UndefinedFunctionError,
    UnrecognizedEventFormatError,
)
from functionspine.events import CanonicalEvent, decode_event
from functionspine.legacy import EventNormalizer
from functionspine.lifecycle import FunctionHost, run, start
from functionspine.models import FunctionDefinition, FunctionKind, FunctionRequest, LifecycleState
from functionspine.registry import (
    FunctionRegistry,
    cloud_event,
    get_default_registry,
    http,
    on_startup,
    reset_default_registry,
    typed,
)
from functionspine.server import FunctionServer
from functionspine.settings import ServerConfig
from functionspine.shared import Globals, GlobalsBuilder

__all__ = [
    "__version__",
    # Registration
    "http",
    "typed",
    "cloud_event",
    "on_startup",
    "FunctionRegistry",
    "get_default_registry",
    "reset_default_registry",
    # Serving
    "start",
    "run",
    "FunctionHost",
    "FunctionServer",
    "ServerConfig",
    # Invocation
    "get_global",
    "current_logger",
    "current_context",
    # Models
    "FunctionDefinition",
    "FunctionKind",
    "FunctionRequest",
    "LifecycleState",
    "CanonicalEvent",
    "EventNormalizer",
    "decode_event",
    "Globals",
    "GlobalsBuilder",
    # Errors
    "ErrorCategory",
    "FunctionSpineError",
    "UndefinedFunctionError",
    "SourceLoadError",
    "StartupTaskError",
    "LifecycleError",
    "GlobalsFrozenError",
    "RequestError",
    "UnrecognizedEventFormatError",
    "DecodeError",
    "HandlerError",
]
