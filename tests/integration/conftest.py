import pytest
from pydantic_ai.models.function import FunctionModel

from volo.agents import AgentRunner
from volo.config import VoloConfig


@pytest.fixture
def make_runner(ledger):
    """Build an ``AgentRunner`` whose model is the given FunctionModel callable."""

    def make(model_fn, **kwargs):
        config = kwargs.pop("config", None) or VoloConfig()
        return AgentRunner(
            ledger,
            config,
            model_factory=lambda model_id: FunctionModel(model_fn),
            **kwargs,
        )

    return make
