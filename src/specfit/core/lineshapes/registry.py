"""Shape registry mapping fit-function selectors to peak-shape variants."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

from specfit.core.shared.exceptions import InputError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from specfit.core.shared.typing import ParamMapping


@runtime_checkable
class Shape(Protocol):
    """Protocol for peak-shape variants."""

    name: ClassVar[str]
    param_names: ClassVar[tuple[str, ...]]
    background_center: float | None

    def __call__(self, x: Any, params: ParamMapping) -> Any:
        """Expected counts density at energy ``x``."""
        ...

    def signal(self, x: Any, params: ParamMapping) -> Any:
        """Peak density without step and background (used for the FWHM)."""
        ...

    def components(self, params: ParamMapping) -> dict[str, Callable[[Any], Any]]:
        """Named component densities as callables of energy."""
        ...


# Global shape registry
SHAPES: dict[str, type[Shape]] = {}


def register_shape(
    shape_names: str | Iterable[str],
) -> Callable[[type[Shape]], type[Shape]]:
    """Register a shape class under one or more selectors.

    Example:
        @register_shape("f_fit")
        class GammaPeakShape(PeakShape):
            ...
    """
    if isinstance(shape_names, str):
        shape_names = [shape_names]

    def decorator(shape_class: type[Shape]) -> type[Shape]:
        for name in shape_names:
            SHAPES[name] = shape_class
        return shape_class

    return decorator


def get_shape(name: str) -> type[Shape]:
    """Get a shape class by selector.

    Raises
    ------
        InputError: If the selector is not registered
    """
    try:
        return SHAPES[name]
    except KeyError:
        msg = f"Unknown fit function {name!r}; available: {list_shapes()}"
        raise InputError(msg) from None


def create_shape(name: str, background_center: float | None = None) -> Shape:
    """Instantiate the shape registered under ``name``."""
    return get_shape(name)(background_center=background_center)


def list_shapes() -> list[str]:
    """List all registered selectors."""
    return sorted(SHAPES)
