"""
LLM Emulator Handler Registry

Named callables (case handlers, branch guards, dynamic branch replies, HTTP
mock handlers) that configuration files reference by id.

Example:
    from llm_emulator.mock.registry import handlers

    @handlers.register("capital")
    def capital(state, ctx):
        return {"nj": "Trenton", "ny": "Albany"}.get(state.lower(), "Mock Capital")

    # config.yaml
    # cases:
    #   - pattern: "what is the capital city of {{state}}"
    #     handler: capital
"""

from typing import Any, Callable, Dict, List, Optional


class UnknownHandlerError(KeyError):
    """Raised when a configuration references an unregistered handler id."""


class HandlerRegistry:
    """Mapping from handler id to a sync or async callable."""

    def __init__(self):
        self._handlers: Dict[str, Callable[..., Any]] = {}

    def register(self, name: str, fn: Optional[Callable[..., Any]] = None):
        """
        Register a callable under `name`.

        Usable directly (`registry.register("id", fn)`) or as a decorator
        (`@registry.register("id")`). Re-registering a name replaces it.
        """
        if fn is not None:
            self._handlers[name] = fn
            return fn

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._handlers[name] = func
            return func

        return decorator

    def resolve(self, name: str) -> Callable[..., Any]:
        """
        Look up a registered callable.

        Raises:
            UnknownHandlerError: If nothing is registered under `name`
        """
        try:
            return self._handlers[name]
        except KeyError:
            raise UnknownHandlerError(
                f"No handler registered as '{name}'. Registered: {', '.join(sorted(self._handlers)) or '(none)'}"
            ) from None

    def resolve_ref(self, ref: Any) -> Optional[Callable[..., Any]]:
        """Accept either a callable (returned as-is), an id, or None."""
        if ref is None or callable(ref):
            return ref
        return self.resolve(str(ref))

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


# Default registry used by config files and the DSL helpers
handlers = HandlerRegistry()
