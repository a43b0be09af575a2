from .base import BaseEngine
from .simulated_engine import SimulatedEngine


def _huggingface_engine(engine_config) -> BaseEngine:
    # Deferred so the simulated engine works without transformers installed
    from .huggingface_engine import HuggingFaceEngine
    return HuggingFaceEngine()


def _simulated_engine(engine_config) -> BaseEngine:
    return SimulatedEngine.from_config(engine_config)


# Engine type to constructor mapping
_ENGINES = {
    "huggingface": _huggingface_engine,
    "simulated": _simulated_engine,
}

ENGINE_TYPES = tuple(_ENGINES)

# Engine types that load weights from engine.model_path
ENGINES_REQUIRING_MODEL = {"huggingface"}


def get_engine(engine_config) -> BaseEngine:
    """
    Factory function to instantiate the correct engine adapter based on configuration.

    Args:
        engine_config (dict): Configuration dictionary containing at least "type".

    Returns:
        BaseEngine: An instantiated concrete engine adapter.

    Raises:
        ValueError: If an unknown engine type is specified.
    """
    engine_type = engine_config.get("type", "huggingface")

    factory = _ENGINES.get(engine_type)
    if factory is None:
        raise ValueError(
            f"Unknown engine type: {engine_type}. "
            f"Available types: {list(_ENGINES.keys())}"
        )

    return factory(engine_config)
