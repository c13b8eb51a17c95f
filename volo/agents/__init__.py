"""Agent loop, prompts, tools and content acquisition."""

from .deps import AgentDeps
from .router import FetchResult, RoutingDecision, route_url, should_escalate, url_fetch
from .runner import AgentRunner, compute_cost, default_model_factory, tally_counters
from .search import SearchClient, choose_provider

__all__ = [
    "AgentDeps",
    "AgentRunner",
    "FetchResult",
    "RoutingDecision",
    "SearchClient",
    "choose_provider",
    "compute_cost",
    "default_model_factory",
    "route_url",
    "should_escalate",
    "tally_counters",
    "url_fetch",
]
