"""
Image Hub Module
Sequential prompt-to-image generation across pluggable AI providers.
"""
from .queue import GenerationQueue, PromptItem, QueueStatus
from .clients import ProviderRegistry, build_registry, GeneratorResult
from .naming import derive_filename, split_prompts

__all__ = [
    "GenerationQueue",
    "PromptItem",
    "QueueStatus",
    "ProviderRegistry",
    "build_registry",
    "GeneratorResult",
    "derive_filename",
    "split_prompts",
]
