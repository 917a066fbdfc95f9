"""
TinyLLM: A Minimal Educational Language Model

This package provides a small, complete next-token language model built on
NumPy: a dense tensor container, CPU kernels, a self-attention + feed-forward
transformer layer, a tiny stacked model with a heuristic training rule, and a
whitespace word tokenizer.

Modules:
    errors: Exception types (ShapeError, TokenRangeError, CheckpointError)
    tensor: Flat float32 tensor with a rank-1 or rank-2 shape
    ops: Matmul, ReLU, softmax and cross-entropy kernels
    transformer: Self-attention + feed-forward transformer layer
    model: TinyLLM model, training step, prediction and checkpoints
    tokenizer: Word-level tokenizer with <pad>/<unk> special tokens
    utils: Corpus loading and training-example helpers

Reference:
    "Attention Is All You Need" (Vaswani et al., 2017)
    https://arxiv.org/abs/1706.03762
"""

from tinyllm.errors import CheckpointError, ShapeError, TinyLLMError, TokenRangeError
from tinyllm.model import TinyLLM, TinyLLMConfig
from tinyllm.tensor import Tensor
from tinyllm.tokenizer import WordTokenizer
from tinyllm.transformer import TransformerLayer

__version__ = "1.0.0"
__author__ = "Educational LLM Project"

__all__ = [
    "CheckpointError",
    "ShapeError",
    "Tensor",
    "TinyLLM",
    "TinyLLMConfig",
    "TinyLLMError",
    "TokenRangeError",
    "TransformerLayer",
    "WordTokenizer",
]
