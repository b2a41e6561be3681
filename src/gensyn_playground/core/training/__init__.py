# gensyn_playground/core/training/__init__.py
"""
Training step backends for the playground node.

- simulator: StepSimulator, TorchStepSimulator, ScriptedStepSimulator
"""

__all__ = [
    'StepSimulator',
    'TorchStepSimulator',
    'ScriptedStepSimulator',
    'create_step_simulator',
    'simulator_factory',
]

def __getattr__(name):
    """Lazy loading of submodules."""
    if name in __all__ or name == 'BACKENDS':
        from gensyn_playground.core.training import simulator
        return getattr(simulator, name)
    raise AttributeError(f"module 'gensyn_playground.core.training' has no attribute '{name}'")
