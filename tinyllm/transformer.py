"""
Transformer Layer

This module implements the single repeating block that TinyLLM stacks:
self-attention followed by a position-wise feed-forward network, each wrapped
in a residual connection.

Architecture (post-residual, no layer normalization):
    x -> Self-Attention -> + x ---------------> h
    h -> FeedForward ----> + h ---------------> output

Self-Attention:
    Q = x @ W_q + b_q,  K = x @ W_k + b_k,  V = x @ W_v + b_v
    Attention(Q, K, V) = softmax(Q @ K^T / sqrt(d)) @ V
    h = Attention(Q, K, V) @ W_o + b_o + x

Feed-Forward:
    output = ReLU(h @ W_ff1 + b_ff1) @ W_ff2 + b_ff2 + h

The attention is single-head-equivalent: Q, K and V are never split into
per-head subspaces. `num_heads` is stored for configuration and reporting
only and does not change the computation. There is no causal mask, so every
position attends to the whole window.

Reference: "Attention Is All You Need" (Vaswani et al., 2017) Section 3.2, 3.3

Classes:
    TransformerLayer: Self-attention + FFN block with fixed weights
"""

import math
from typing import Dict, Optional

import numpy as np

from tinyllm.errors import ShapeError
from tinyllm.ops import matmul, relu, softmax
from tinyllm.tensor import Tensor


class TransformerLayer:
    """
    One transformer block.

    Weights are created once at construction: projection matrices are drawn
    from N(0, 0.01^2) and biases start at zero. The training step in
    tinyllm.model never updates them.

    Attributes:
        hidden_dim: Model dimension d
        num_heads: Configured head count (informational, see module docstring)
        ffn_dim: Inner feed-forward dimension, 4 * hidden_dim
        w_q, w_k, w_v, w_o: (d, d) attention projections
        b_q, b_k, b_v, b_o: (d,) attention biases
        w_ff1: (d, 4d) expansion, b_ff1: (4d,)
        w_ff2: (4d, d) compression, b_ff2: (d,)
    """

    def __init__(
        self,
        hidden_dim: int,
        num_heads: int = 4,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the layer weights.

        Args:
            hidden_dim: Model dimension d
            num_heads: Number of attention heads (recorded, not used for splitting)
            rng: Generator for weight initialization. A fresh unseeded
                 generator is used when omitted.
        """
        if hidden_dim <= 0:
            raise ShapeError(f"hidden_dim must be positive, got {hidden_dim}")

        self.hidden_dim = hidden_dim
        self.num_heads = num_heads
        self.ffn_dim = 4 * hidden_dim

        if rng is None:
            rng = np.random.default_rng()

        # Attention projections
        self.w_q = Tensor(hidden_dim, hidden_dim)
        self.w_k = Tensor(hidden_dim, hidden_dim)
        self.w_v = Tensor(hidden_dim, hidden_dim)
        self.w_o = Tensor(hidden_dim, hidden_dim)

        for weight in (self.w_q, self.w_k, self.w_v, self.w_o):
            weight.random_init(rng)

        self.b_q = Tensor(hidden_dim)
        self.b_k = Tensor(hidden_dim)
        self.b_v = Tensor(hidden_dim)
        self.b_o = Tensor(hidden_dim)

        # Feed-forward network: d -> 4d -> d
        self.w_ff1 = Tensor(hidden_dim, self.ffn_dim)
        self.w_ff2 = Tensor(self.ffn_dim, hidden_dim)

        self.w_ff1.random_init(rng)
        self.w_ff2.random_init(rng)

        self.b_ff1 = Tensor(self.ffn_dim)
        self.b_ff2 = Tensor(hidden_dim)

    def forward(self, x: Tensor) -> Tensor:
        """
        Forward pass through attention and feed-forward sublayers.

        Args:
            x: Hidden states of shape (seq_len, hidden_dim). Not modified.

        Returns:
            New tensor of shape (seq_len, hidden_dim)

        Raises:
            ShapeError: If x is not 2D or its width is not hidden_dim
        """
        if x.ndim != 2 or x.shape[1] != self.hidden_dim:
            raise ShapeError(
                f"Expected input of shape (seq_len, {self.hidden_dim}), got {x.shape}"
            )

        seq_len = x.shape[0]

        # Step 1: Project to queries, keys and values
        query = self._project(x, self.w_q, self.b_q)
        key = self._project(x, self.w_k, self.b_k)
        value = self._project(x, self.w_v, self.b_v)

        # Step 2: Scaled attention scores, (seq_len, seq_len)
        scores = Tensor(seq_len, seq_len)
        matmul(scores, query, key.transpose())
        scores.matrix[...] /= np.float32(math.sqrt(self.hidden_dim))

        # Step 3: Attention weights
        softmax(scores)

        # Step 4: Weighted sum of values
        attention = Tensor(seq_len, self.hidden_dim)
        matmul(attention, scores, value)

        # Step 5: Output projection + residual
        hidden = self._project(attention, self.w_o, self.b_o)
        hidden.matrix[...] += x.matrix

        # Step 6: Feed-forward + residual
        ff_hidden = self._project(hidden, self.w_ff1, self.b_ff1)
        relu(ff_hidden)

        output = self._project(ff_hidden, self.w_ff2, self.b_ff2)
        output.matrix[...] += hidden.matrix

        return output

    @staticmethod
    def _project(x: Tensor, weight: Tensor, bias: Tensor) -> Tensor:
        """Return x @ weight with bias added to every row."""
        out = Tensor(x.shape[0], weight.shape[1])
        matmul(out, x, weight)
        out.matrix[...] += bias.data
        return out

    def get_parameters(self) -> Dict[str, Tensor]:
        """Return all weights keyed by name."""
        return {
            "w_q": self.w_q,
            "w_k": self.w_k,
            "w_v": self.w_v,
            "w_o": self.w_o,
            "b_q": self.b_q,
            "b_k": self.b_k,
            "b_v": self.b_v,
            "b_o": self.b_o,
            "w_ff1": self.w_ff1,
            "b_ff1": self.b_ff1,
            "w_ff2": self.w_ff2,
            "b_ff2": self.b_ff2,
        }

    def count_parameters(self) -> int:
        """Count the weights in this layer."""
        return sum(param.size for param in self.get_parameters().values())
