"""
Numeric Kernels for TinyLLM

This module implements the stateless CPU kernels the transformer is built
from. Every kernel takes and returns tinyllm.tensor.Tensor objects; kernels
that produce a result write into a caller-supplied output tensor, and the
activation kernels (relu, softmax) mutate their argument in place.

All arithmetic stays in float32, matching the tensor storage type.

Functions:
    matmul: Matrix product C = A @ B into a pre-sized output
    relu: In-place Rectified Linear Unit
    relu_backward: Gradient mask of ReLU
    softmax: In-place row-wise softmax
    cross_entropy_loss: Mean negative log-likelihood of one-hot targets
    cross_entropy_backward: Combined softmax + cross-entropy gradient

Reference:
    - "Attention Is All You Need" (Vaswani et al., 2017) - Softmax in attention
"""

import numpy as np

from tinyllm.errors import ShapeError
from tinyllm.tensor import Tensor

# Floor applied to predicted probabilities before taking the logarithm
PROBABILITY_FLOOR = np.float32(1e-7)


def _require_2d(tensor: Tensor, name: str) -> None:
    if tensor.ndim != 2:
        raise ShapeError(f"{name} must be 2D, got shape {tensor.shape}")


def _rows(tensor: Tensor) -> np.ndarray:
    """View a tensor as (rows, cols); a 1D tensor is a single row."""
    if tensor.ndim == 1:
        return tensor.data.reshape(1, -1)
    return tensor.matrix


def matmul(out: Tensor, a: Tensor, b: Tensor) -> None:
    """
    Compute the matrix product out = a @ b.

    Mathematical Formula:
        out[i, j] = sum_p a[i, p] * b[p, j]

    Shapes:
        a:   (m, k)
        b:   (k, n)
        out: (m, n), pre-sized by the caller

    The output is zeroed before the product is written, so stale values in
    `out` never leak into the result.

    Args:
        out: Destination tensor of shape (m, n)
        a: Left operand of shape (m, k)
        b: Right operand of shape (k, n)

    Raises:
        ShapeError: If any operand is not 2D, the inner dimensions differ,
                    or `out` is not (m, n)

    Example:
        >>> a = Tensor.from_array([[1.0, 2.0], [3.0, 4.0]])
        >>> b = Tensor.from_array([[1.0, 0.0], [0.0, 1.0]])
        >>> out = Tensor(2, 2)
        >>> matmul(out, a, b)
        >>> out.to_array()
        array([[1., 2.],
               [3., 4.]], dtype=float32)
    """
    _require_2d(a, "a")
    _require_2d(b, "b")
    _require_2d(out, "out")

    m, k = a.shape
    k_b, n = b.shape
    if k != k_b:
        raise ShapeError(
            f"Inner dimensions differ: a is {a.shape}, b is {b.shape}"
        )
    if out.shape != (m, n):
        raise ShapeError(
            f"Output must be {(m, n)} for {a.shape} @ {b.shape}, got {out.shape}"
        )

    out.zero()
    np.matmul(a.matrix, b.matrix, out=out.matrix)


def relu(x: Tensor) -> None:
    """
    Apply ReLU in place.

    Mathematical Formula:
        ReLU(x) = max(0, x)

    Args:
        x: Tensor of any shape, overwritten with the activated values
    """
    np.maximum(x.data, 0.0, out=x.data)


def relu_backward(dx: Tensor, dy: Tensor, x: Tensor) -> None:
    """
    Compute the gradient of ReLU with respect to its input.

    The derivative of ReLU is 1 where x > 0 and 0 elsewhere (0 is used as the
    subgradient at x == 0), so:

        dx[i] = dy[i] if x[i] > 0 else 0

    Args:
        dx: Output gradient buffer, same size as x
        dy: Upstream gradient, same size as x
        x: Pre-activation input of the forward pass

    Raises:
        ShapeError: If the three tensors differ in size
    """
    if not (dx.size == dy.size == x.size):
        raise ShapeError(
            f"relu_backward size mismatch: dx {dx.shape}, dy {dy.shape}, x {x.shape}"
        )

    dx.data[:] = np.where(x.data > 0.0, dy.data, np.float32(0.0))


def softmax(x: Tensor) -> None:
    """
    Apply softmax to every row of x, in place.

    Converts each row of arbitrary real values into a probability distribution
    where all values are in [0, 1] and sum to 1.

    Mathematical Formula:
        softmax(x)_i = exp(x_i) / sum_j(exp(x_j))

    Numerical Stability:
        The row maximum is subtracted before exponentiation, so the largest
        exponent is exp(0) = 1 and nothing can overflow. The result is
        unchanged because the common factor exp(-max) cancels.

    Args:
        x: 2D tensor (rows are independent distributions) or a 1D tensor,
           which is treated as a single row
    """
    rows = _rows(x)

    # Step 1: Subtract the row maximum
    rows -= np.max(rows, axis=1, keepdims=True)

    # Step 2: Exponentiate
    np.exp(rows, out=rows)

    # Step 3: Normalize by the row sum
    rows /= np.sum(rows, axis=1, keepdims=True)


def cross_entropy_loss(predictions: Tensor, targets: Tensor) -> float:
    """
    Compute the mean cross-entropy of probability rows against one-hot targets.

    For each row, only the class whose target exceeds 0.5 contributes:

        loss_row = -log(max(p_target, 1e-7))

    The floor keeps the loss finite (at most -log(1e-7) ~= 16.118) when the
    model assigns zero probability to the true class. A row whose target is
    all zeros contributes nothing.

    Args:
        predictions: Probabilities of shape (batch_size, num_classes)
        targets: One-hot targets of the same shape

    Returns:
        Loss summed over rows and divided by batch_size

    Raises:
        ShapeError: If the shapes differ or are not 2D
    """
    _require_2d(predictions, "predictions")
    if predictions.shape != targets.shape:
        raise ShapeError(
            f"predictions {predictions.shape} and targets {targets.shape} differ"
        )

    batch_size = predictions.shape[0]
    probabilities = predictions.matrix
    target_mask = targets.matrix > 0.5

    log_probabilities = np.log(np.maximum(probabilities[target_mask], PROBABILITY_FLOOR))
    loss = np.float32(0.0) - np.sum(log_probabilities, dtype=np.float32)

    return float(loss / np.float32(batch_size))


def cross_entropy_backward(dz: Tensor, predictions: Tensor, targets: Tensor) -> None:
    """
    Compute the gradient of softmax + cross-entropy with respect to the logits.

    When softmax and cross-entropy are combined, the Jacobians collapse to:

        dL/dz = (predictions - targets) / batch_size

    The training step in tinyllm.model does not call this; it is provided for
    extending training toward real backpropagation.

    Args:
        dz: Output gradient buffer, same shape as predictions
        predictions: Softmax probabilities of shape (batch_size, num_classes)
        targets: One-hot targets of the same shape

    Raises:
        ShapeError: If the shapes differ or are not 2D
    """
    _require_2d(predictions, "predictions")
    if not (dz.shape == predictions.shape == targets.shape):
        raise ShapeError(
            f"Shape mismatch: dz {dz.shape}, predictions {predictions.shape}, "
            f"targets {targets.shape}"
        )

    batch_size = np.float32(predictions.shape[0])
    dz.matrix[:] = (predictions.matrix - targets.matrix) / batch_size
