from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Optional

from brand_studio.core.settings import Settings, settings
from brand_studio.models.entities import TrainingJob
from brand_studio.services.errors import GenerationError, InvalidRequestError, ProviderError
from brand_studio.services.training_provider import TrainingProvider

logger = logging.getLogger(__name__)

SEED_MAX = 2**32 - 1
_ASPECT_RATIO = re.compile(r"^\d{1,2}:\d{1,2}$")


def resolve_seed(seed: Any = None, rng: random.Random | None = None) -> int:
    if seed is None:
        return (rng or random.SystemRandom()).randint(0, SEED_MAX)
    try:
        value = int(seed)
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"Seed must be an integer, got {seed!r}") from exc
    if not 0 <= value <= SEED_MAX:
        raise InvalidRequestError(f"Seed must be between 0 and {SEED_MAX}, got {value}")
    return value


def resolve_aspect_ratio(aspect_ratio: Optional[str], default: str = "1:1") -> str:
    if not aspect_ratio:
        return default
    if not _ASPECT_RATIO.match(aspect_ratio):
        raise InvalidRequestError(f"Aspect ratio must look like '16:9', got {aspect_ratio!r}")
    return aspect_ratio


def build_prompt(prompt: str, trigger_word: str) -> str:
    return f"{prompt.strip()}, {trigger_word}"


def build_model_ref(destination: str, version: str) -> str:
    return f"{destination}:{version}"


@dataclass
class InferenceResult:
    output_url: str
    model_ref: str
    prompt: str
    aspect_ratio: str
    seed: int


class InferenceRunner:
    def __init__(self, provider: TrainingProvider, cfg: Settings = settings, rng: random.Random | None = None):
        self.provider = provider
        self.cfg = cfg
        self.rng = rng

    def run(
        self,
        job: TrainingJob,
        trigger_word: str,
        prompt: str,
        aspect_ratio: Optional[str] = None,
        seed: Any = None,
    ) -> InferenceResult:
        if job.status != "succeeded" or not job.version:
            raise GenerationError(f"Training {job.remote_id} has no usable model version yet")
        if not job.destination:
            raise GenerationError(f"Training {job.remote_id} has no model destination")

        model_ref = build_model_ref(job.destination, job.version)
        ratio = resolve_aspect_ratio(aspect_ratio, self.cfg.default_aspect_ratio)
        resolved_seed = resolve_seed(seed, self.rng)
        full_prompt = build_prompt(prompt, trigger_word)
        inputs = {
            "prompt": full_prompt,
            "seed": resolved_seed,
            "aspect_ratio": ratio,
            "lora_scale": self.cfg.lora_scale,
            "num_inference_steps": self.cfg.num_inference_steps,
            "output_format": self.cfg.output_format,
            "disable_safety_checker": self.cfg.disable_safety_checker,
        }

        logger.info(f"Generating with {model_ref} seed={resolved_seed}")
        try:
            outputs = self.provider.run_inference(model_ref, inputs)
        except ProviderError as exc:
            raise GenerationError(f"Inference with {model_ref} failed: {exc}") from exc
        if not outputs:
            raise GenerationError(f"Inference with {model_ref} returned no output")

        return InferenceResult(
            output_url=outputs[0], model_ref=model_ref, prompt=full_prompt, aspect_ratio=ratio, seed=resolved_seed
        )
