"""Engine error types.

Structural failures (dataset fetch, style switch, projection transition) are
raised by the component that hit them and caught at the MapEngine boundary,
where they become EngineState.error. Recoverable problems (icon loads,
malformed cross-references, symbol placement) never raise past their component.
"""


class GlobeviewError(Exception):
    """Base class for all engine errors."""


class DatasetFetchError(GlobeviewError):
    """The base dataset could not be fetched or parsed."""


class StyleSwitchError(GlobeviewError):
    """A theme switch failed; the previous theme remains current."""


class StyleSwitchTimeout(StyleSwitchError):
    """The surface never signalled that the new style finished loading."""


class ProjectionTransitionError(GlobeviewError):
    """A flat/globe transition failed; the previous projection remains current."""


class SurfaceError(GlobeviewError):
    """The rendering surface rejected an operation or was already removed."""
