"""
TinyLLM Language Model

This module assembles the tensor container, the numeric kernels and the
transformer layer into a tiny next-token predictor.

Architecture Overview:
    Input Token IDs (seq_len,)
           |
    [Embedding Lookup] -> (seq_len, hidden_dim)
           |
    [TransformerLayer] x num_layers
           |
    [Last Position] -> (1, hidden_dim)
           |
    [Output Projection] -> (1, vocab_size)
           |
    [Softmax] -> Next-token probabilities

Training:
    train_step() does NOT backpropagate through the transformer layers. It
    applies a heuristic update to the two tensors at the ends of the network:

        output_weight[:, v] -= lr * (pred[v] - target[v]) * 0.01
        embeddings[t, :]    -= lr * loss * 0.0001      (for each input token t)

    The attention and feed-forward weights keep their initial values. This is
    the documented baseline training rule; replacing it with real gradients
    changes every number the model produces.

Checkpoint format (little-endian):
    int32 vocab_size, int32 hidden_dim, int32 num_layers, int32 seq_length,
    int32 len(embeddings), float32 * len(embeddings),
    int32 len(output_weight), float32 * len(output_weight)

    Only the embedding table and output weight are stored. Loading rebuilds
    the transformer layers from the configured seed.

Classes:
    TinyLLMConfig: Configuration dataclass for model hyperparameters
    TinyLLM: Embedding + transformer stack + output projection
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np

from tinyllm.errors import CheckpointError, ShapeError, TokenRangeError
from tinyllm.ops import cross_entropy_loss, matmul, softmax
from tinyllm.tensor import Tensor
from tinyllm.transformer import TransformerLayer

logger = logging.getLogger(__name__)

# Scale factors of the heuristic update rule
OUTPUT_UPDATE_SCALE = np.float32(0.01)
EMBEDDING_UPDATE_SCALE = np.float32(0.0001)

_INT32 = np.dtype("<i4")
_FLOAT32 = np.dtype("<f4")
_HEADER_FIELDS = 4

# num_layers is not backed by any stored buffer, so it cannot be checked
# against the file size; headers above this are treated as corrupt
MAX_CHECKPOINT_LAYERS = 1024


@dataclass
class TinyLLMConfig:
    """
    Configuration for TinyLLM.

    Attributes:
        vocab_size: Number of token ids the model can read and predict
        hidden_dim: Width of embeddings and hidden states
        num_layers: Number of stacked transformer layers
        seq_length: Nominal context window (stored in checkpoints, not enforced)
        learning_rate: Step size of the heuristic update rule
        num_heads: Head count passed to each layer (informational only)
        seed: Seed of the model's own random generator; identical seeds give
              identical initial weights
    """

    vocab_size: int
    hidden_dim: int
    num_layers: int = 2
    seq_length: int = 16
    learning_rate: float = 0.001
    num_heads: int = 4
    seed: int = 42


class TinyLLM:
    """
    Tiny autoregressive language model.

    Example usage:
        config = TinyLLMConfig(vocab_size=100, hidden_dim=32, num_layers=2)
        model = TinyLLM(config)

        probabilities = model.forward([5, 17, 3])   # Tensor of shape (1, 100)
        loss = model.train_step([5, 17, 3], 42)
        next_id = model.predict([5, 17, 3])

        model.save_model("model_checkpoint.dat")
        restored = TinyLLM.load_model("model_checkpoint.dat")

    Attributes:
        config: Model configuration
        embeddings: (vocab_size, hidden_dim) embedding table
        layers: Transformer layers in forward order
        output_weight: (hidden_dim, vocab_size) output projection
    """

    def __init__(self, config: TinyLLMConfig):
        """
        Initialize the model.

        Weights are drawn from a generator owned by this model, in this order:
        embeddings, each transformer layer, output weight.

        Args:
            config: TinyLLMConfig with model hyperparameters

        Raises:
            ShapeError: If vocab_size or hidden_dim is not positive, or
                        num_layers is negative
        """
        if config.num_layers < 0:
            raise ShapeError(f"num_layers must be >= 0, got {config.num_layers}")

        self.config = config
        self._rng = np.random.default_rng(config.seed)

        # Embedding table: token id -> row
        self.embeddings = Tensor(config.vocab_size, config.hidden_dim)
        self.embeddings.random_init(self._rng)

        self.layers: List[TransformerLayer] = [
            TransformerLayer(config.hidden_dim, config.num_heads, rng=self._rng)
            for _ in range(config.num_layers)
        ]

        # Output projection: hidden state -> vocabulary logits
        self.output_weight = Tensor(config.hidden_dim, config.vocab_size)
        self.output_weight.random_init(self._rng)

    @property
    def vocab_size(self) -> int:
        return self.config.vocab_size

    @property
    def hidden_dim(self) -> int:
        return self.config.hidden_dim

    @property
    def num_layers(self) -> int:
        return self.config.num_layers

    @property
    def seq_length(self) -> int:
        return self.config.seq_length

    @property
    def learning_rate(self) -> float:
        return self.config.learning_rate

    def _validate_tokens(self, token_ids: Sequence[int]) -> np.ndarray:
        """Return token_ids as an int64 array, rejecting bad shapes and ids."""
        ids = np.asarray(token_ids)

        if ids.ndim != 1 or ids.size == 0:
            raise ShapeError(
                f"token_ids must be a non-empty 1D sequence, got shape {ids.shape}"
            )
        if not np.issubdtype(ids.dtype, np.integer):
            raise TypeError(f"token_ids must be integers, got dtype {ids.dtype}")

        out_of_range = (ids < 0) | (ids >= self.vocab_size)
        if np.any(out_of_range):
            bad_id = int(ids[np.argmax(out_of_range)])
            raise TokenRangeError(bad_id, self.vocab_size)

        return ids.astype(np.int64)

    def forward(self, token_ids: Sequence[int]) -> Tensor:
        """
        Forward pass: token ids -> next-token probability distribution.

        Args:
            token_ids: Sequence of token ids, each in [0, vocab_size)

        Returns:
            Tensor of shape (1, vocab_size) whose row sums to 1

        Raises:
            ShapeError: If token_ids is empty or not 1D
            TokenRangeError: If any id is outside the vocabulary
        """
        ids = self._validate_tokens(token_ids)

        # Step 1: Embedding lookup, (seq_len, hidden_dim)
        hidden = Tensor.from_array(self.embeddings.matrix[ids])

        # Step 2: Transformer stack
        for layer in self.layers:
            hidden = layer.forward(hidden)

        # Step 3: Keep only the last position
        last_hidden = Tensor.from_array(hidden.matrix[-1:])

        # Step 4: Project to vocabulary and normalize
        probabilities = Tensor(1, self.vocab_size)
        matmul(probabilities, last_hidden, self.output_weight)
        softmax(probabilities)

        return probabilities

    def train_step(self, token_ids: Sequence[int], target_id: int) -> float:
        """
        Run one heuristic training step.

        Steps:
            1. Forward pass on token_ids
            2. One-hot target for target_id (all zeros if target_id is outside
               the vocabulary, which makes the loss 0)
            3. Cross-entropy loss
            4. Output weight: column v moves by lr * (pred[v] - target[v]) * 0.01
            5. Embeddings: each distinct token among the first vocab_size
               positions moves by lr * loss * 0.0001 in every dimension

        All update arithmetic is float32. Weights are written only after the
        loss has been computed.

        Args:
            token_ids: Input window of token ids
            target_id: Id of the token that should follow the window

        Returns:
            The cross-entropy loss before the update
        """
        predictions = self.forward(token_ids)

        target = Tensor(1, self.vocab_size)
        if 0 <= target_id < self.vocab_size:
            target.set(0, target_id, 1.0)

        loss = cross_entropy_loss(predictions, target)

        learning_rate = np.float32(self.learning_rate)

        # Output projection: broadcast the per-class step down every row
        gradient = predictions.matrix[0] - target.matrix[0]
        self.output_weight.matrix[:] -= (learning_rate * gradient) * OUTPUT_UPDATE_SCALE

        # Embeddings: same scalar step for every dimension of each input token
        embedding_step = learning_rate * np.float32(loss) * EMBEDDING_UPDATE_SCALE
        window = [int(token_id) for token_id in token_ids][: self.vocab_size]
        for token_id in dict.fromkeys(window):
            self.embeddings.matrix[token_id] -= embedding_step

        return loss

    def predict(self, token_ids: Sequence[int]) -> int:
        """
        Greedy next-token prediction.

        Returns:
            Id with the highest probability; on ties the lowest id wins
        """
        probabilities = self.forward(token_ids)
        return int(np.argmax(probabilities.matrix[0]))

    def predict_token(self, token_ids: Sequence[int], tokenizer) -> str:
        """Predict the next token and map it back to a word with `tokenizer`."""
        return tokenizer.id_to_token(self.predict(token_ids))

    def get_parameters(self) -> Dict[str, Tensor]:
        """
        Get all model parameters.

        Returns:
            Dictionary mapping parameter names to tensors
        """
        params = {"embeddings": self.embeddings}

        for index, layer in enumerate(self.layers):
            for name, param in layer.get_parameters().items():
                params[f"layers.{index}.{name}"] = param

        params["output_weight"] = self.output_weight
        return params

    def count_parameters(self) -> int:
        """Count total number of parameters in the model."""
        return sum(param.size for param in self.get_parameters().values())

    def save_model(self, filepath: str) -> None:
        """
        Write the checkpoint to `filepath`.

        Only the configuration header, embeddings and output weight are
        written; see the module docstring for the byte layout.
        """
        header = np.array(
            [self.vocab_size, self.hidden_dim, self.num_layers, self.seq_length],
            dtype=_INT32,
        )

        with open(filepath, "wb") as f:
            f.write(header.tobytes())
            for tensor in (self.embeddings, self.output_weight):
                f.write(np.array([tensor.size], dtype=_INT32).tobytes())
                f.write(tensor.data.astype(_FLOAT32).tobytes())

        logger.info("Saved checkpoint: %s", filepath)

    @classmethod
    def load_model(
        cls,
        filepath: str,
        learning_rate: float = 0.001,
        seed: int = 42,
    ) -> "TinyLLM":
        """
        Rebuild a model from a checkpoint written by save_model().

        The model is constructed at the saved configuration, so its
        transformer layers are freshly initialized from `seed`; the embedding
        table and output weight are then overwritten from the file.

        Args:
            filepath: Path to the checkpoint
            learning_rate: Learning rate for the rebuilt model (not stored)
            seed: Generator seed for the rebuilt model (not stored)

        Returns:
            The restored TinyLLM

        Raises:
            CheckpointError: If the file is missing, truncated, its header
                             and buffer lengths are inconsistent, or
                             num_layers exceeds MAX_CHECKPOINT_LAYERS
        """
        try:
            with open(filepath, "rb") as f:
                payload = f.read()
        except OSError as exc:
            raise CheckpointError(f"Cannot read checkpoint {filepath}: {exc}") from exc

        reader = _CheckpointReader(payload, filepath)

        vocab_size, hidden_dim, num_layers, seq_length = reader.read_int32(_HEADER_FIELDS)
        if vocab_size <= 0 or hidden_dim <= 0 or num_layers < 0 or seq_length <= 0:
            raise CheckpointError(
                f"Invalid checkpoint header in {filepath}: vocab_size={vocab_size}, "
                f"hidden_dim={hidden_dim}, num_layers={num_layers}, "
                f"seq_length={seq_length}"
            )
        if num_layers > MAX_CHECKPOINT_LAYERS:
            raise CheckpointError(
                f"Invalid checkpoint header in {filepath}: num_layers={num_layers} "
                f"exceeds {MAX_CHECKPOINT_LAYERS}"
            )

        # Reject headers the file cannot back before allocating any weights
        num_weights = vocab_size * hidden_dim
        expected_bytes = (
            _HEADER_FIELDS * _INT32.itemsize
            + 2 * (_INT32.itemsize + num_weights * _FLOAT32.itemsize)
        )
        if len(payload) < expected_bytes:
            raise CheckpointError(
                f"Checkpoint {filepath} is truncated: header implies {expected_bytes} "
                f"bytes, file has {len(payload)}"
            )

        config = TinyLLMConfig(
            vocab_size=vocab_size,
            hidden_dim=hidden_dim,
            num_layers=num_layers,
            seq_length=seq_length,
            learning_rate=learning_rate,
            seed=seed,
        )
        model = cls(config)

        for name, tensor in (
            ("embeddings", model.embeddings),
            ("output_weight", model.output_weight),
        ):
            (length,) = reader.read_int32(1)
            if length != tensor.size:
                raise CheckpointError(
                    f"Checkpoint {filepath}: {name} has {length} values, "
                    f"expected {tensor.size} for shape {tensor.shape}"
                )
            tensor.data[:] = reader.read_float32(length)

        logger.info(
            "Loaded checkpoint: %s (vocab_size=%d, hidden_dim=%d, num_layers=%d)",
            filepath,
            vocab_size,
            hidden_dim,
            num_layers,
        )
        return model


class _CheckpointReader:
    """Sequential reader over checkpoint bytes that fails on truncation."""

    def __init__(self, payload: bytes, filepath: str):
        self._payload = payload
        self._filepath = filepath
        self._offset = 0

    def _read(self, dtype: np.dtype, count: int) -> np.ndarray:
        num_bytes = dtype.itemsize * count
        if self._offset + num_bytes > len(self._payload):
            raise CheckpointError(
                f"Checkpoint {self._filepath} is truncated: needed {num_bytes} bytes "
                f"at offset {self._offset}, file has {len(self._payload)}"
            )
        values = np.frombuffer(
            self._payload, dtype=dtype, count=count, offset=self._offset
        )
        self._offset += num_bytes
        return values

    def read_int32(self, count: int) -> List[int]:
        return [int(value) for value in self._read(_INT32, count)]

    def read_float32(self, count: int) -> np.ndarray:
        return self._read(_FLOAT32, count).astype(np.float32)


# =============================================================================
# EDUCATIONAL DEMO
# Run with: python -m tinyllm.model
# =============================================================================
if __name__ == "__main__":
    print("=" * 70)
    print("TINYLLM DEMO - Forward, Train Step, Predict")
    print("=" * 70)
    print()

    demo_config = TinyLLMConfig(vocab_size=10, hidden_dim=8, num_layers=1)
    demo_model = TinyLLM(demo_config)
    print(f"Parameters: {demo_model.count_parameters():,}")

    window = [2, 3, 4]
    print(f"Input window: {window}")
    print(f"Prediction before training: {demo_model.predict(window)}")

    for step in range(5):
        step_loss = demo_model.train_step(window, 5)
        print(f"  Step {step + 1}: loss = {step_loss:.5f}")

    print(f"Prediction after training: {demo_model.predict(window)}")
