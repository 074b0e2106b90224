"""
Embedding Generator Tests

Uses an in-memory fake model through ``model_factory``; no weights are
downloaded.
"""

import asyncio

import numpy as np
import pytest

from conftest import CPU, CountingFactory, FakeModel
from nightreign_corpus.core.errors import InvalidInputError, ModelLoadError
from nightreign_corpus.embeddings import generator as generator_module
from nightreign_corpus.embeddings.device import DeviceConfig
from nightreign_corpus.embeddings.generator import (
    EmbeddingGenerator,
    create_embedding_generator,
    dispose_embedding_generator,
    get_embedding_generator,
)


def make_generator(factory=None, batch_size=32, device_config=CPU):
    return EmbeddingGenerator(
        model_name="test-model",
        batch_size=batch_size,
        device_config=device_config,
        model_factory=factory or CountingFactory(),
    )


class TestLifecycle:
    """Tests for initialize / dispose."""

    @pytest.mark.asyncio
    async def test_concurrent_initialize_loads_once(self):
        factory = CountingFactory(delay=0.05)
        generator = make_generator(factory)

        await asyncio.gather(
            generator.initialize(),
            generator.initialize(),
            generator.embed("Gladius"),
        )
        await generator.initialize()

        assert factory.loads == ["cpu"]
        assert generator.is_ready()
        assert generator.device == "cpu"

    @pytest.mark.asyncio
    async def test_dispose_then_embed_reloads(self):
        factory = CountingFactory()
        generator = make_generator(factory)

        await generator.embed("first")
        generator.dispose()
        assert not generator.is_ready()

        await generator.embed("second")
        assert factory.loads == ["cpu", "cpu"]

    @pytest.mark.asyncio
    async def test_dispose_during_load_discards_model(self):
        factory = CountingFactory(delay=0.1)
        generator = make_generator(factory)

        pending = asyncio.ensure_future(generator.initialize())
        await asyncio.sleep(0.02)
        generator.dispose()
        await pending

        assert factory.loads == ["cpu"]
        assert not generator.is_ready()
        assert generator.device is None

        await generator.embed("Gladius")
        assert factory.loads == ["cpu", "cpu"]
        assert generator.is_ready()

    @pytest.mark.asyncio
    async def test_cpu_load_failure_raises_and_is_retried(self):
        factory = CountingFactory(fail_devices={"cpu"})
        generator = make_generator(factory)

        with pytest.raises(ModelLoadError):
            await generator.initialize()
        with pytest.raises(ModelLoadError):
            await generator.embed("text")

        assert factory.loads == ["cpu", "cpu"]
        assert not generator.is_ready()

    @pytest.mark.asyncio
    async def test_gpu_load_failure_falls_back_to_cpu(self):
        factory = CountingFactory(fail_devices={"cuda"})
        generator = make_generator(factory, device_config=DeviceConfig("cuda", True, True))

        await generator.initialize()

        assert factory.loads == ["cuda", "cpu"]
        assert generator.device == "cpu"

    @pytest.mark.asyncio
    async def test_dimension_comes_from_model(self):
        generator = make_generator(CountingFactory(model=FakeModel(dim=16)))
        await generator.initialize()
        assert generator.dimension == 16


class TestEmbed:

    @pytest.mark.asyncio
    async def test_returns_normalized_vector(self):
        generator = make_generator()
        vector = await generator.embed("Gladius is a Night Lord.")

        assert vector.shape == (8,)
        assert vector.dtype == np.float32
        assert np.linalg.norm(vector) == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_blank_text_is_rejected(self, text):
        factory = CountingFactory()
        generator = make_generator(factory)

        with pytest.raises(InvalidInputError):
            await generator.embed(text)
        assert factory.loads == []


class TestEmbedBatch:
    """Tests for batching, progress and per-item retry."""

    @pytest.mark.asyncio
    async def test_empty_input(self):
        factory = CountingFactory(fail_devices={"cpu"})
        generator = make_generator(factory)

        result = await generator.embed_batch([])

        assert result.results == []
        assert result.errors == []
        assert result.processing_time_ms < 1000
        assert factory.loads == []

    @pytest.mark.asyncio
    async def test_progress_after_every_batch(self):
        model = FakeModel()
        generator = make_generator(CountingFactory(model=model), batch_size=2)
        progress = []

        texts = [f"chunk {i}" for i in range(5)]
        result = await generator.embed_batch(texts, on_progress=lambda done, total: progress.append((done, total)))

        assert progress == [(2, 5), (4, 5), (5, 5)]
        assert [r.text for r in result.results] == texts
        assert result.errors == []
        assert [len(call) for call in model.calls] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_failed_batch_retries_per_item(self):
        model = FakeModel(fail_on=["poison pill"])
        generator = make_generator(CountingFactory(model=model), batch_size=3)

        result = await generator.embed_batch(["a", "poison pill", "b", "c"])

        assert [r.text for r in result.results] == ["a", "b", "c"]
        assert len(result.errors) == 1
        assert result.errors[0].text == "poison pill"
        assert "tokenizer exploded" in result.errors[0].error

    @pytest.mark.asyncio
    async def test_blank_items_become_errors(self):
        generator = make_generator()
        result = await generator.embed_batch(["a", "  ", "b"])

        assert [r.text for r in result.results] == ["a", "b"]
        assert [e.text for e in result.errors] == ["  "]
        assert result.errors[0].error.startswith("InvalidInputError")

    @pytest.mark.asyncio
    async def test_model_load_failure_aborts_batch(self):
        generator = make_generator(CountingFactory(fail_devices={"cpu"}))

        with pytest.raises(ModelLoadError):
            await generator.embed_batch(["a", "b"])

    @pytest.mark.asyncio
    async def test_batch_matches_single_embeddings(self):
        generator = make_generator()
        single = await generator.embed("Stance: 160. Not parryable.")
        batch = await generator.embed_batch(["Stance: 160. Not parryable."])

        np.testing.assert_allclose(batch.results[0].embedding, single)


class TestSharedGenerator:

    def test_singleton_and_dispose(self):
        dispose_embedding_generator()
        first = get_embedding_generator()

        assert get_embedding_generator() is first
        dispose_embedding_generator()
        assert get_embedding_generator() is not first
        dispose_embedding_generator()
        assert generator_module._default_generator is None

    def test_create_is_isolated(self):
        isolated = create_embedding_generator(model_name="other-model", batch_size=4)

        assert isolated is not get_embedding_generator()
        assert isolated.model_name == "other-model"
        assert isolated.batch_size == 4
        dispose_embedding_generator()
