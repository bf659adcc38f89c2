"""
Route → provider/model bindings and fallback chains.

Call sites ask for an abstract route ("reasoning", "fast", ...); which vendor
answers is a deployment decision made here, once, from configuration.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable, Mapping, Optional

from decisiongate.config import Settings


class Route(StrEnum):
    PRIMARY = "primary"
    FAST = "fast"
    REASONING = "reasoning"
    BACKUP = "backup"


@dataclass(frozen=True)
class RouteBinding:
    """A route statically bound to one provider + model."""
    route: Route
    provider: str
    model: str


DEFAULT_FALLBACK_CHAINS: dict[Route, tuple[Route, ...]] = {
    Route.PRIMARY: (Route.FAST, Route.BACKUP),
    Route.FAST: (Route.PRIMARY, Route.BACKUP),
    Route.REASONING: (Route.PRIMARY, Route.FAST),
    Route.BACKUP: (Route.PRIMARY, Route.FAST),
}

_PROVIDER_MODEL_SETTING = {
    "openai": "openai_model",
    "groq": "groq_model",
    "deepseek": "deepseek_model",
    "alibaba": "alibaba_model",
    "anthropic": "anthropic_model",
}


def build_chain(
    route: Route,
    fallbacks: Iterable[Route],
) -> tuple[Route, ...]:
    """
    Full attempt order for a call: the originating route first, then its
    fallbacks in order. The originating route is never retried and no
    route appears twice.
    """
    chain = [route]
    for candidate in fallbacks:
        candidate = Route(candidate)
        if candidate not in chain:
            chain.append(candidate)
    return tuple(chain)


def bindings_from_settings(settings: Settings) -> dict[Route, RouteBinding]:
    """Resolve each route to its configured provider and that provider's model."""
    route_providers = {
        Route.PRIMARY: settings.route_primary,
        Route.FAST: settings.route_fast,
        Route.REASONING: settings.route_reasoning,
        Route.BACKUP: settings.route_backup,
    }
    bindings: dict[Route, RouteBinding] = {}
    for route, provider in route_providers.items():
        provider = provider.strip().lower()
        model_attr = _PROVIDER_MODEL_SETTING.get(provider)
        if model_attr is None:
            raise ValueError(f"Unknown provider '{provider}' bound to route '{route}'")
        bindings[route] = RouteBinding(route=route, provider=provider, model=getattr(settings, model_attr))
    return bindings


def fallback_chains_from_settings(
    settings: Settings,
    defaults: Optional[Mapping[Route, tuple[Route, ...]]] = None,
) -> dict[Route, tuple[Route, ...]]:
    """Per-route fallback lists from configuration, defaulting route by route."""
    chains = dict(defaults or DEFAULT_FALLBACK_CHAINS)
    for name, fallbacks in settings.fallback_chains.items():
        route = Route(name)
        chains[route] = tuple(r for r in build_chain(route, (Route(f) for f in fallbacks))[1:])
    return chains
