"""
Dense Tensor Container

This module implements the storage abstraction every other part of TinyLLM
works through: a flat float32 buffer plus a shape descriptor.

Only rank-1 (vectors, e.g. biases) and rank-2 (matrices, e.g. weights and
activations) tensors exist in this model, so any other rank is rejected when
the tensor is created.

Memory Layout:
    A (rows, cols) tensor stores its values row-major in one flat buffer:

        index(row, col) = row * cols + col

    The kernels in tinyllm.ops use the shaped view `matrix`, which is a NumPy
    view onto the same buffer, so writes through either view are visible in
    both.

Classes:
    Tensor: Flat float32 buffer with a rank-1 or rank-2 shape
"""

from typing import Optional, Tuple

import numpy as np

from tinyllm.errors import ShapeError


def _as_integer(value, what: str, error: type) -> int:
    # bool is an int subclass but never a meaningful size or index
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer)):
        raise error(f"{what} must be integers, got {value!r}")
    return int(value)


class Tensor:
    """
    Dense float32 tensor of rank 1 or 2.

    Attributes:
        shape: Tuple of positive dimensions, length 1 or 2
        data: Flat float32 buffer with len(data) == prod(shape)

    Invariants:
        - The buffer length always equals the product of the shape
        - Each Tensor exclusively owns its buffer (clone() deep-copies)

    Example:
        >>> weights = Tensor(4, 8)
        >>> weights.random_init(np.random.default_rng(42))
        >>> weights.set(0, 3, 1.5)
        >>> weights.get(0, 3)
        1.5
    """

    DTYPE = np.float32

    def __init__(self, *shape: int):
        """
        Create a zero-filled tensor.

        Args:
            *shape: One or two positive dimensions, e.g. Tensor(8) or Tensor(4, 8)

        Raises:
            ShapeError: If the rank is not 1 or 2, or any dimension is <= 0
                or not an integer
        """
        if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
            shape = tuple(shape[0])

        if len(shape) not in (1, 2):
            raise ShapeError(
                f"Tensor rank must be 1 or 2, got shape {tuple(shape)}"
            )

        dims = []
        for dim in shape:
            dim = _as_integer(dim, "Tensor dimensions", ShapeError)
            if dim <= 0:
                raise ShapeError(
                    f"Tensor dimensions must be positive, got shape {tuple(shape)}"
                )
            dims.append(dim)

        self._shape: Tuple[int, ...] = tuple(dims)
        self._data = np.zeros(int(np.prod(self._shape)), dtype=self.DTYPE)

    @classmethod
    def from_array(cls, array) -> "Tensor":
        """
        Build a tensor holding a copy of a 1D or 2D array-like.

        Args:
            array: Nested list or ndarray of rank 1 or 2

        Returns:
            New Tensor with the array's shape and values (cast to float32)
        """
        values = np.asarray(array, dtype=cls.DTYPE)
        tensor = cls(*values.shape)
        tensor._data[:] = values.reshape(-1)
        return tensor

    @property
    def shape(self) -> Tuple[int, ...]:
        """Shape descriptor, (n,) or (rows, cols)."""
        return self._shape

    @property
    def ndim(self) -> int:
        return len(self._shape)

    @property
    def size(self) -> int:
        """Total number of elements (length of the flat buffer)."""
        return self._data.size

    @property
    def data(self) -> np.ndarray:
        """Flat buffer. Writes go straight into the tensor."""
        return self._data

    @property
    def matrix(self) -> np.ndarray:
        """
        Shaped view of the buffer, (n,) or (rows, cols).

        This is a view, not a copy: in-place NumPy operations on it mutate
        the tensor.
        """
        return self._data.reshape(self._shape)

    def random_init(self, rng: np.random.Generator, std: float = 0.01) -> None:
        """
        Fill the tensor with samples from N(0, std^2).

        Uses the Box-Muller transform: for each output value two uniform
        draws u1, u2 are taken from `rng`, and

            z = sqrt(-2 * ln(u1)) * cos(2 * pi * u2)

        is a standard normal sample. The draws are interleaved (u1, u2, u1,
        u2, ...) so the values depend only on the generator state.

        Args:
            rng: Generator owned by the caller. Seeding it identically gives
                 identical weights.
            std: Standard deviation of the distribution (default 0.01)
        """
        uniforms = rng.random(2 * self.size).reshape(self.size, 2)

        # Generator.random() samples [0, 1); flip to (0, 1] so ln(u1) is finite
        u1 = 1.0 - uniforms[:, 0]
        u2 = uniforms[:, 1]

        z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
        self._data[:] = (z * std).astype(self.DTYPE)

    def zero(self) -> None:
        """Set every element to 0."""
        self._data.fill(0.0)

    def get(self, row: int, col: Optional[int] = None) -> float:
        """
        Read one element.

        get(idx) reads the flat buffer directly (any rank).
        get(row, col) reads a matrix element and requires a 2D tensor.

        Raises:
            ShapeError: get(row, col) on a tensor that is not 2D
            IndexError: Index outside the tensor
            TypeError: Non-integer index
        """
        return float(self._data[self._offset(row, col)])

    def set(self, *args) -> None:
        """
        Write one element.

        set(idx, value) writes the flat buffer directly (any rank).
        set(row, col, value) writes a matrix element and requires a 2D tensor.

        Raises:
            ShapeError: set(row, col, value) on a tensor that is not 2D
            IndexError: Index outside the tensor
            TypeError: Wrong number of arguments or a non-integer index
        """
        if len(args) == 2:
            idx, value = args
            self._data[self._offset(idx, None)] = value
        elif len(args) == 3:
            row, col, value = args
            self._data[self._offset(row, col)] = value
        else:
            raise TypeError(
                f"set() takes (idx, value) or (row, col, value), got {len(args)} arguments"
            )

    def _offset(self, row: int, col: Optional[int]) -> int:
        if col is None:
            idx = _as_integer(row, "Tensor indices", TypeError)
            if not 0 <= idx < self.size:
                raise IndexError(f"Index {idx} out of range [0, {self.size})")
            return idx

        if self.ndim != 2:
            raise ShapeError(
                f"Row/column access requires a 2D tensor, got shape {self._shape}"
            )

        rows, cols = self._shape
        row = _as_integer(row, "Tensor indices", TypeError)
        col = _as_integer(col, "Tensor indices", TypeError)
        if not (0 <= row < rows and 0 <= col < cols):
            raise IndexError(
                f"Index ({row}, {col}) out of range for shape {self._shape}"
            )
        return row * cols + col

    def clone(self) -> "Tensor":
        """Return an independent copy with the same shape and values."""
        result = Tensor(*self._shape)
        result._data[:] = self._data
        return result

    def transpose(self) -> "Tensor":
        """Return a new (cols, rows) tensor holding the transpose of a 2D tensor."""
        if self.ndim != 2:
            raise ShapeError(
                f"transpose() requires a 2D tensor, got shape {self._shape}"
            )
        return Tensor.from_array(self.matrix.T)

    def to_array(self) -> np.ndarray:
        """Return a shaped copy of the values as a NumPy array."""
        return self.matrix.copy()

    def __repr__(self) -> str:
        return f"Tensor(shape={self._shape}, dtype={np.dtype(self.DTYPE).name})"
