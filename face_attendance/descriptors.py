"""
Face descriptor validation and storage codec.

A descriptor is a fixed-length vector of floats produced by an external
extraction model. Inside the core it is always a read-only float64 numpy
array so it cannot be mutated after validation and survives storage
bit-for-bit.
"""
from typing import Optional, Protocol, Sequence, Union

import numpy as np

from face_attendance.errors import InvalidDescriptor

DESCRIPTOR_DTYPE = np.dtype("<f8")

DescriptorLike = Union[Sequence[float], np.ndarray]


class DescriptorExtractor(Protocol):
    """
    Extraction collaborator: turns a raw image into a descriptor.

    Implementations raise NoFaceDetected when the image holds no face.
    The core never calls it; its output is the core's only input format.
    """

    def __call__(self, raw_image) -> np.ndarray:
        ...


def to_descriptor(values: DescriptorLike, length: Optional[int] = None) -> np.ndarray:
    """
    Validate and freeze a descriptor.

    Args:
        values: sequence of numbers or a numpy array
        length: required dimension; skipped when None

    Returns:
        Read-only 1-D float64 array

    Raises:
        InvalidDescriptor: not 1-D, empty, wrong length or non-finite values
    """
    try:
        descriptor = np.array(values, dtype=DESCRIPTOR_DTYPE)
    except (TypeError, ValueError) as e:
        raise InvalidDescriptor(f"Descriptor is not a numeric vector: {e}") from e

    if descriptor.ndim != 1 or descriptor.size == 0:
        raise InvalidDescriptor(f"Descriptor must be a non-empty 1-D vector, got shape {descriptor.shape}")

    if length is not None and descriptor.size != length:
        raise InvalidDescriptor(f"Descriptor length {descriptor.size} does not match expected length {length}")

    if not np.all(np.isfinite(descriptor)):
        raise InvalidDescriptor("Descriptor contains non-finite values")

    descriptor.setflags(write=False)
    return descriptor


def descriptor_to_bytes(descriptor: np.ndarray) -> bytes:
    """Serialize as little-endian float64 for storage."""
    return np.ascontiguousarray(descriptor, dtype=DESCRIPTOR_DTYPE).tobytes()


def descriptor_from_bytes(data: bytes, dimension: Optional[int] = None) -> np.ndarray:
    # frombuffer over bytes is already read-only
    descriptor = np.frombuffer(data, dtype=DESCRIPTOR_DTYPE)
    if dimension is not None and descriptor.size != dimension:
        raise InvalidDescriptor(f"Stored descriptor has {descriptor.size} values, expected {dimension}")
    return descriptor
