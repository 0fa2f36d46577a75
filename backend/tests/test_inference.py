import random

import pytest

from brand_studio.models.entities import TrainingJob
from brand_studio.services.errors import GenerationError, InvalidRequestError
from brand_studio.services.inference import (
    SEED_MAX,
    InferenceRunner,
    build_prompt,
    resolve_aspect_ratio,
    resolve_seed,
)


def _ready_job():
    return TrainingJob(brand_id=1, remote_id="job-1", destination="tester/coffee-co-1", status="succeeded", version="v7")


def test_supplied_seed_is_used_verbatim():
    assert resolve_seed(12345) == 12345
    assert resolve_seed("12345") == 12345


def test_random_seed_is_unsigned_32_bit():
    rng = random.Random(0)
    for _ in range(200):
        assert 0 <= resolve_seed(None, rng) <= SEED_MAX
    assert SEED_MAX == 4294967295


def test_invalid_seed_is_rejected():
    with pytest.raises(InvalidRequestError):
        resolve_seed("abc")


def test_prompt_always_carries_trigger_word():
    assert build_prompt(" a latte cup ", "OHJI_AB12CD") == "a latte cup, OHJI_AB12CD"


def test_aspect_ratio_defaults_and_validates():
    assert resolve_aspect_ratio(None) == "1:1"
    assert resolve_aspect_ratio("16:9") == "16:9"
    with pytest.raises(InvalidRequestError):
        resolve_aspect_ratio("wide")


def test_runner_builds_full_model_reference(provider, cfg):
    result = InferenceRunner(provider, cfg).run(_ready_job(), "OHJI_AB12CD", "a latte cup", seed=99)
    model_ref, inputs = provider.inference_calls[0]
    assert model_ref == "tester/coffee-co-1:v7"
    assert inputs["prompt"] == "a latte cup, OHJI_AB12CD"
    assert inputs["seed"] == 99
    assert inputs["aspect_ratio"] == "1:1"
    assert inputs["lora_scale"] == 0.9
    assert inputs["num_inference_steps"] == 28
    assert inputs["disable_safety_checker"] is True
    assert result.output_url == provider.outputs[0]


def test_runner_uses_first_output_only(provider, cfg):
    provider.outputs = ["https://delivery.test/a.jpg", "https://delivery.test/b.jpg"]
    result = InferenceRunner(provider, cfg).run(_ready_job(), "T", "p")
    assert result.output_url == "https://delivery.test/a.jpg"


def test_runner_refuses_unfinished_job(provider, cfg):
    job = _ready_job()
    job.status, job.version = "starting", ""
    with pytest.raises(GenerationError):
        InferenceRunner(provider, cfg).run(job, "T", "p")
    assert provider.inference_calls == []


def test_empty_inference_output_is_an_error(provider, cfg):
    provider.outputs = []
    with pytest.raises(GenerationError):
        InferenceRunner(provider, cfg).run(_ready_job(), "T", "p")


def test_out_of_range_seed_is_rejected():
    with pytest.raises(InvalidRequestError):
        resolve_seed(2**64)
    with pytest.raises(InvalidRequestError):
        resolve_seed(-1)
    assert resolve_seed(SEED_MAX) == SEED_MAX
