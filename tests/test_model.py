"""
Tests for the TinyLLM model.

Tests cover:
- Configuration and seeded initialization
- Forward pass: probability output, token validation
- Training step: loss, exact heuristic updates, frozen transformer weights
- Greedy prediction and tie breaking
- Checkpoint save/load and corrupt checkpoint handling
"""

import math

import numpy as np
import pytest

from tinyllm.errors import CheckpointError, ShapeError, TokenRangeError
from tinyllm.model import TinyLLM, TinyLLMConfig
from tinyllm.tokenizer import WordTokenizer


@pytest.fixture
def small_config():
    """The five-token configuration used throughout these tests."""
    return TinyLLMConfig(vocab_size=5, hidden_dim=4, num_layers=1)


@pytest.fixture
def model(small_config):
    return TinyLLM(small_config)


class TestTinyLLMConfig:
    """Test configuration dataclass."""

    def test_defaults(self):
        config = TinyLLMConfig(vocab_size=10, hidden_dim=8)

        assert config.num_layers == 2
        assert config.seq_length == 16
        assert config.learning_rate == pytest.approx(0.001)
        assert config.num_heads == 4
        assert config.seed == 42


class TestTinyLLMInit:
    """Test model construction."""

    def test_shapes(self, model):
        assert model.embeddings.shape == (5, 4)
        assert model.output_weight.shape == (4, 5)
        assert len(model.layers) == 1
        assert model.layers[0].hidden_dim == 4

    def test_same_seed_same_weights(self, small_config):
        first = TinyLLM(small_config)
        second = TinyLLM(small_config)

        for name, param in first.get_parameters().items():
            np.testing.assert_array_equal(param.data, second.get_parameters()[name].data)

    def test_different_seed_different_weights(self):
        first = TinyLLM(TinyLLMConfig(vocab_size=5, hidden_dim=4, seed=1))
        second = TinyLLM(TinyLLMConfig(vocab_size=5, hidden_dim=4, seed=2))

        assert not np.array_equal(first.embeddings.data, second.embeddings.data)

    def test_count_parameters(self, model):
        layer_params = model.layers[0].count_parameters()
        assert model.count_parameters() == 5 * 4 + layer_params + 4 * 5

    def test_zero_layers(self):
        """A model without transformer layers still runs."""
        model = TinyLLM(TinyLLMConfig(vocab_size=5, hidden_dim=4, num_layers=0))

        assert model.forward([1, 2]).shape == (1, 5)

    def test_invalid_dimensions(self):
        with pytest.raises(ShapeError):
            TinyLLM(TinyLLMConfig(vocab_size=0, hidden_dim=4))
        with pytest.raises(ShapeError):
            TinyLLM(TinyLLMConfig(vocab_size=5, hidden_dim=4, num_layers=-1))


class TestTinyLLMForward:
    """Test the forward pass."""

    def test_probability_distribution(self, model):
        probabilities = model.forward([2, 3])

        assert probabilities.shape == (1, 5)
        assert np.all((probabilities.data >= 0.0) & (probabilities.data <= 1.0))
        assert float(np.sum(probabilities.data)) == pytest.approx(1.0, abs=1e-6)

    def test_accepts_numpy_ids(self, model):
        from_list = model.forward([0, 4, 1])
        from_array = model.forward(np.array([0, 4, 1]))

        np.testing.assert_array_equal(from_list.data, from_array.data)

    def test_deterministic(self, model):
        np.testing.assert_array_equal(model.forward([1, 2]).data, model.forward([1, 2]).data)

    def test_uses_last_position(self, model):
        """Only the final position's hidden state reaches the output layer."""
        with_zero_layers = TinyLLM(TinyLLMConfig(vocab_size=5, hidden_dim=4, num_layers=0))

        # Without layers the prediction depends only on the last token
        np.testing.assert_array_equal(
            with_zero_layers.forward([0, 1, 3]).data, with_zero_layers.forward([3]).data
        )

    @pytest.mark.parametrize("bad_id", [5, -1, 100])
    def test_token_out_of_range(self, model, bad_id):
        with pytest.raises(TokenRangeError) as exc_info:
            model.forward([1, bad_id])

        assert exc_info.value.token_id == bad_id
        assert exc_info.value.vocab_size == 5

    def test_token_range_error_is_index_error(self, model):
        with pytest.raises(IndexError):
            model.forward([7])

    def test_empty_sequence(self, model):
        with pytest.raises(ShapeError):
            model.forward([])

    def test_non_integer_ids(self, model):
        with pytest.raises(TypeError):
            model.forward([1.5, 2.0])


class TestTinyLLMTrainStep:
    """Test the heuristic training step."""

    def test_scenario_exact_updates(self, model):
        """
        vocab=5, hidden=4, one layer, input [2, 3], target 4.

        The output weight moves by lr * (pred - target) * 0.01 per column and
        the embedding rows of tokens 2 and 3 move by lr * loss * 0.0001.
        """
        embeddings_before = model.embeddings.to_array()
        output_before = model.output_weight.to_array()
        predictions = model.forward([2, 3]).to_array()[0]

        loss = model.train_step([2, 3], 4)

        assert math.isfinite(loss)
        assert loss >= 0.0
        assert loss == pytest.approx(-math.log(predictions[4]), rel=1e-5)

        learning_rate = np.float32(0.001)
        target = np.zeros(5, dtype=np.float32)
        target[4] = 1.0

        expected_output = output_before - (learning_rate * (predictions - target)) * np.float32(0.01)
        np.testing.assert_array_equal(model.output_weight.to_array(), expected_output)

        step = learning_rate * np.float32(loss) * np.float32(0.0001)
        expected_embeddings = embeddings_before.copy()
        expected_embeddings[2] -= step
        expected_embeddings[3] -= step
        np.testing.assert_array_equal(model.embeddings.to_array(), expected_embeddings)

    def test_scenario_reproducible(self, small_config):
        first = TinyLLM(small_config)
        second = TinyLLM(small_config)

        assert first.train_step([2, 3], 4) == second.train_step([2, 3], 4)
        np.testing.assert_array_equal(first.output_weight.data, second.output_weight.data)
        np.testing.assert_array_equal(first.embeddings.data, second.embeddings.data)

    def test_other_embeddings_unchanged(self, model):
        before = model.embeddings.to_array()

        model.train_step([2, 3], 4)

        after = model.embeddings.to_array()
        for token_id in (0, 1, 4):
            np.testing.assert_array_equal(after[token_id], before[token_id])

    def test_transformer_weights_frozen(self, model):
        before = {name: t.to_array() for name, t in model.layers[0].get_parameters().items()}

        for _ in range(3):
            model.train_step([2, 3], 4)

        for name, param in model.layers[0].get_parameters().items():
            np.testing.assert_array_equal(param.to_array(), before[name])

    def test_repeated_token_updated_once(self, model):
        before = model.embeddings.to_array()

        loss = model.train_step([2, 2, 2], 1)

        step = np.float32(0.001) * np.float32(loss) * np.float32(0.0001)
        np.testing.assert_array_equal(model.embeddings.to_array()[2], before[2] - step)

    def test_window_clipped_to_vocab_size(self, model):
        """Only the first vocab_size positions update embeddings."""
        before = model.embeddings.to_array()

        model.train_step([0, 0, 0, 0, 0, 3], 1)

        np.testing.assert_array_equal(model.embeddings.to_array()[3], before[3])
        assert not np.array_equal(model.embeddings.to_array()[0], before[0])

    def test_out_of_range_target(self, model):
        """An out-of-range target gives an all-zero one-hot and zero loss."""
        embeddings_before = model.embeddings.to_array()
        output_before = model.output_weight.to_array()
        predictions = model.forward([2, 3]).to_array()[0]

        loss = model.train_step([2, 3], 99)

        assert loss == 0.0
        np.testing.assert_array_equal(model.embeddings.to_array(), embeddings_before)
        expected_output = output_before - (np.float32(0.001) * predictions) * np.float32(0.01)
        np.testing.assert_array_equal(model.output_weight.to_array(), expected_output)

    def test_learning_rate_scales_update(self):
        slow = TinyLLM(TinyLLMConfig(vocab_size=5, hidden_dim=4, num_layers=1, learning_rate=0.001))
        fast = TinyLLM(TinyLLMConfig(vocab_size=5, hidden_dim=4, num_layers=1, learning_rate=0.1))
        before = slow.output_weight.to_array()

        slow.train_step([2, 3], 4)
        fast.train_step([2, 3], 4)

        slow_change = np.abs(slow.output_weight.to_array() - before).sum()
        fast_change = np.abs(fast.output_weight.to_array() - before).sum()
        assert fast_change > slow_change > 0.0

    def test_invalid_token_leaves_weights_untouched(self, model):
        before = {name: t.to_array() for name, t in model.get_parameters().items()}

        with pytest.raises(TokenRangeError):
            model.train_step([2, 9], 4)

        for name, param in model.get_parameters().items():
            np.testing.assert_array_equal(param.to_array(), before[name])


class TestTinyLLMPredict:
    """Test greedy prediction."""

    def test_zero_output_weight_predicts_first_index(self, model):
        """Equal probabilities: the lowest id wins."""
        model.output_weight.zero()

        assert model.predict([2, 3]) == 0

    def test_predicts_argmax(self, model):
        model.output_weight.zero()
        model.output_weight.matrix[:, 3] = 1.0
        # Make the last hidden state positive so column 3 dominates
        model.embeddings.matrix[:] = 1.0

        probabilities = model.forward([1]).to_array()[0]
        assert model.predict([1]) == int(np.argmax(probabilities))

    def test_predict_token(self, model):
        tokenizer = WordTokenizer(["alpha beta gamma"])
        model.output_weight.zero()

        assert model.predict_token([2, 3], tokenizer) == "<pad>"


class TestTinyLLMCheckpoint:
    """Test save_model / load_model."""

    def test_round_trip(self, tmp_path):
        config = TinyLLMConfig(vocab_size=7, hidden_dim=4, num_layers=2, seq_length=12)
        model = TinyLLM(config)
        model.train_step([1, 2, 3], 4)

        path = tmp_path / "model.dat"
        model.save_model(str(path))
        restored = TinyLLM.load_model(str(path))

        assert restored.vocab_size == 7
        assert restored.hidden_dim == 4
        assert restored.num_layers == 2
        assert restored.seq_length == 12
        np.testing.assert_array_equal(restored.embeddings.data, model.embeddings.data)
        np.testing.assert_array_equal(restored.output_weight.data, model.output_weight.data)

    def test_restored_model_predicts_identically(self, tmp_path):
        """Layers are rebuilt from the same seed, so outputs match."""
        model = TinyLLM(TinyLLMConfig(vocab_size=6, hidden_dim=4, num_layers=1))
        model.train_step([1, 2], 3)

        path = tmp_path / "model.dat"
        model.save_model(str(path))
        restored = TinyLLM.load_model(str(path))

        np.testing.assert_array_equal(restored.forward([1, 2]).data, model.forward([1, 2]).data)

    def test_byte_layout(self, tmp_path, model):
        path = tmp_path / "model.dat"
        model.save_model(str(path))

        payload = path.read_bytes()
        header = np.frombuffer(payload, dtype="<i4", count=5)

        np.testing.assert_array_equal(header, [5, 4, 1, 16, 20])
        assert len(payload) == 4 * 4 + 4 + 20 * 4 + 4 + 20 * 4

        embeddings = np.frombuffer(payload, dtype="<f4", count=20, offset=20)
        np.testing.assert_array_equal(embeddings, model.embeddings.data)

        (output_length,) = np.frombuffer(payload, dtype="<i4", count=1, offset=100)
        assert output_length == 20

    def test_learning_rate_applied_on_load(self, tmp_path, model):
        path = tmp_path / "model.dat"
        model.save_model(str(path))

        restored = TinyLLM.load_model(str(path), learning_rate=0.5)
        assert restored.learning_rate == pytest.approx(0.5)

    def test_missing_file(self, tmp_path):
        with pytest.raises(CheckpointError):
            TinyLLM.load_model(str(tmp_path / "missing.dat"))

    def test_checkpoint_error_is_os_error(self, tmp_path):
        with pytest.raises(OSError):
            TinyLLM.load_model(str(tmp_path / "missing.dat"))

    @pytest.mark.parametrize("keep_bytes", [0, 10, 20, 60, 103, 180])
    def test_truncated_file(self, tmp_path, model, keep_bytes):
        path = tmp_path / "model.dat"
        model.save_model(str(path))
        path.write_bytes(path.read_bytes()[:keep_bytes])

        with pytest.raises(CheckpointError):
            TinyLLM.load_model(str(path))

    def test_length_mismatch(self, tmp_path):
        payload = np.array([5, 4, 1, 16, 19], dtype="<i4").tobytes()
        payload += np.zeros(19, dtype="<f4").tobytes()
        path = tmp_path / "bad.dat"
        path.write_bytes(payload)

        with pytest.raises(CheckpointError):
            TinyLLM.load_model(str(path))

    def test_huge_header_dimensions(self, tmp_path):
        """A header the file cannot back fails before any allocation."""
        path = tmp_path / "bad.dat"
        path.write_bytes(np.array([2**31 - 1, 2**31 - 1, 1, 16], dtype="<i4").tobytes())

        with pytest.raises(CheckpointError):
            TinyLLM.load_model(str(path))

    def test_too_many_layers(self, tmp_path, model):
        path = tmp_path / "model.dat"
        model.save_model(str(path))
        payload = bytearray(path.read_bytes())
        payload[8:12] = np.array([2**31 - 1], dtype="<i4").tobytes()
        path.write_bytes(bytes(payload))

        with pytest.raises(CheckpointError):
            TinyLLM.load_model(str(path))

    def test_invalid_header(self, tmp_path):
        path = tmp_path / "bad.dat"
        path.write_bytes(np.array([0, 4, 1, 16], dtype="<i4").tobytes())

        with pytest.raises(CheckpointError):
            TinyLLM.load_model(str(path))
