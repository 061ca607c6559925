"""Configuration for the tree loader.

This module defines how users tune loading behavior, such as how long a
fetch may take before its loading state becomes visible.
"""

from dataclasses import dataclass, fields
from typing import Any, List, Mapping


@dataclass
class LoaderConfig:
    """Options recognised by ``TreeLoader``.

    Attributes:
        loading_transition_ms: Delay before a pending children fetch is
            shown as loading. Fetches that finish sooner never flash a
            loading state. 0 shows loading immediately.
        mark_failures: Surface failed fetches as a failed LoadableSet
            instead of leaving them loading. Only used when no explicit
            error policy is given to the loader.
    """

    loading_transition_ms: float = 0
    mark_failures: bool = False

    # Camel-case spellings accepted by coerce()
    _ALIASES = {
        'loadingTransitionMs': 'loading_transition_ms',
        'markFailures': 'mark_failures',
    }

    @classmethod
    def immediate(cls) -> 'LoaderConfig':
        """Show loading states as soon as a fetch starts."""
        return cls(loading_transition_ms=0)

    @classmethod
    def debounced(cls, ms: float = 150) -> 'LoaderConfig':
        """Hide loading states for fetches faster than ``ms``.

        Args:
            ms: Debounce delay in milliseconds
        """
        return cls(loading_transition_ms=ms)

    @classmethod
    def coerce(cls, options: Any) -> 'LoaderConfig':
        """Build a validated config from None, a config or a mapping.

        Raises:
            ValueError: If the resulting configuration is invalid
            TypeError: If options is of an unsupported type
        """
        if options is None:
            config = cls()
        elif isinstance(options, cls):
            config = options
        elif isinstance(options, Mapping):
            known = {f.name for f in fields(cls)}
            kwargs = {}
            for key, value in options.items():
                name = cls._ALIASES.get(key, key)
                if name not in known:
                    raise ValueError(f"Unknown loader option: {key}")
                kwargs[name] = value
            config = cls(**kwargs)
        else:
            raise TypeError(f"Cannot build a LoaderConfig from {type(options).__name__}")

        errors = config.validate()
        if errors:
            raise ValueError("Invalid loader configuration: " + "; ".join(errors))
        return config

    @property
    def loading_transition_seconds(self) -> float:
        return self.loading_transition_ms / 1000.0

    def validate(self) -> List[str]:
        """Validate configuration for consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not isinstance(self.loading_transition_ms, (int, float)) or isinstance(self.loading_transition_ms, bool):
            errors.append("loading_transition_ms must be a number")
        elif self.loading_transition_ms < 0:
            errors.append("loading_transition_ms cannot be negative")

        return errors
