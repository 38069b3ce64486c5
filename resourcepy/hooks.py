"""
Request processing hooks

A hook (middleware) is a callable `hook(ctx, next)`, it calls `next()` to continue processing
the request and may work on the context before and after that call. Not calling `next()`
short-circuits the remaining hooks.

    def before_post(ctx, next):
        ctx.payload["owner"] = current_user.id
        return next()

    api.expose_object(Item, "/api", before_post=before_post, hooks={"post": {"after": audit}})
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

METHODS = ("index", "get", "virtual", "post", "put", "patch", "delete")

Hook = Callable[[Any, Callable[[], Any]], Any]


def passthrough(ctx, next):
    return next()


def compose(middleware: List[Hook]) -> Callable:
    """
    Compose the middleware into a single hook, the hooks are called in order
    :raises RuntimeError: next() called multiple times by a hook
    """

    def composed(ctx, next=None):
        last = -1

        def dispatch(position):
            nonlocal last
            if position <= last:
                raise RuntimeError("next() called multiple times")
            last = position
            if position >= len(middleware):
                # the continuation of the enclosing chain
                return next() if next is not None else None
            return middleware[position](ctx, lambda: dispatch(position + 1))

        return dispatch(0)

    return composed


@dataclass
class MethodOptions:
    """
    The hooks and settings of a single route method

    :param before: hooks running before the query stages (global before, then before_<method>)
    :param after: hooks running after the query stages (global after, then after_<method>)
    :param hook_before: hooks[method]["before"], runs between the before-query and the query stage
    :param hook_after: hooks[method]["after"], runs between the query and the after-query stage
    :param settings: the remaining resource options (convert_ids, query_filter, path, ...)
    """

    method: str
    before: List[Hook] = field(default_factory=list)
    after: List[Hook] = field(default_factory=list)
    hook_before: Hook = passthrough
    hook_after: Hook = passthrough
    settings: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.settings.get(name, default)


def _hook_list(*hooks) -> List[Hook]:
    result = []
    for hook in hooks:
        if hook is None:
            continue
        if isinstance(hook, (list, tuple)):
            result.extend(hook)
        else:
            result.append(hook)
    return result


def get_method_options(method: str, options: Optional[Dict[str, Any]] = None) -> MethodOptions:
    """
    :param method: one of METHODS
    :param options: resource options, eg. {"before": hook, "after_index": hook, "hooks": {"post": {"before": hook}}}
    """
    if isinstance(options, MethodOptions):
        return options
    options = dict(options or {})
    method_hooks = (options.get("hooks") or {}).get(method) or {}
    reserved = {"before", "after", f"before_{method}", f"after_{method}", "hooks"}
    return MethodOptions(
        method=method,
        before=_hook_list(options.get("before"), options.get(f"before_{method}")),
        after=_hook_list(options.get("after"), options.get(f"after_{method}")),
        hook_before=method_hooks.get("before") or passthrough,
        hook_after=method_hooks.get("after") or passthrough,
        settings={key: value for key, value in options.items() if key not in reserved},
    )


class HookRegistry:
    """
    Maps the registered route paths to their resource and middleware chains,
    owned by the ResourceAPI and passed to the views
    """

    def __init__(self) -> None:
        self._chains: Dict[Tuple[str, str], Callable] = {}
        self._resources: Dict[str, Any] = {}

    def register(self, path: str, method: str, resource: Any, chain: Callable) -> None:
        self._chains[(path, method)] = chain
        self._resources[path] = resource

    def chain(self, path: str, method: str) -> Callable:
        return self._chains[(path, method)]

    def resource(self, path: str) -> Any:
        return self._resources.get(path)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._chains

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._chains)
