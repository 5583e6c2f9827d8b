"""
Tests for the descriptor codec, descriptor normalization and the hash embedder.
"""

import json

import numpy as np
import pytest

from facematch.core.errors import DimensionMismatchError
from facematch.core.schema import DescriptorShape, Descriptors, to_embedding
from facematch.vector.embeddings import (DeterministicHashEmbedder, IFaceEmbedder, decode_descriptor,
                                         encode_descriptor, euclidean_distance)


class TestDescriptorCodec:

    def test_decode_little_endian_float32(self):
        values = np.arange(128, dtype=np.float32) / 10
        buffer = values.astype("<f4").tobytes()

        decoded = decode_descriptor(buffer, 128)

        assert decoded.dtype == np.float32
        np.testing.assert_array_equal(decoded, values)

    def test_encode_matches_decode(self):
        values = np.linspace(-1, 1, 128, dtype=np.float32)
        assert len(encode_descriptor(values)) == 128 * 4
        np.testing.assert_array_equal(decode_descriptor(encode_descriptor(values), 128), values)

    def test_empty_buffer(self):
        with pytest.raises(ValueError, match="empty"):
            decode_descriptor(b"", 128)

    def test_partial_float(self):
        with pytest.raises(ValueError, match="multiple of 4"):
            decode_descriptor(b"\x00" * 10, 128)

    def test_wrong_dimension(self):
        with pytest.raises(DimensionMismatchError) as exc_info:
            decode_descriptor(np.zeros(64, dtype="<f4").tobytes(), 128)
        assert exc_info.value.actual == 64


class TestDescriptorNormalization:

    def test_flat_array_is_single(self):
        descriptors = Descriptors.from_raw(json.dumps([0.1, 0.2, 0.3]))

        assert descriptors.shape == DescriptorShape.SINGLE
        assert len(descriptors.as_list()) == 1
        np.testing.assert_allclose(descriptors.as_list()[0], [0.1, 0.2, 0.3], rtol=1e-6)

    def test_nested_array_is_many(self):
        descriptors = Descriptors.from_raw(json.dumps([[0.1, 0.2], [0.3, 0.4], [0.5, 0.6]]))

        assert descriptors.shape == DescriptorShape.MANY
        assert len(descriptors.as_list()) == 3

    def test_python_list_input(self):
        descriptors = Descriptors.from_raw([[1.0, 2.0]])
        assert descriptors.shape == DescriptorShape.MANY

    def test_empty_and_null(self):
        assert Descriptors.from_raw(None).as_list() == []
        assert Descriptors.from_raw("[]").as_list() == []

    def test_mixed_payload_rejected(self):
        with pytest.raises(ValueError):
            Descriptors.from_raw([1.0, [2.0]])

    def test_invalid_json_rejected(self):
        with pytest.raises(ValueError):
            Descriptors.from_raw("not json")

    def test_embeddings_are_immutable(self):
        embedding = to_embedding([1.0, 2.0])
        with pytest.raises(ValueError):
            embedding[0] = 5.0


class TestDeterministicHashEmbedder:

    def test_interface(self):
        assert isinstance(DeterministicHashEmbedder(), IFaceEmbedder)

    def test_same_image_same_descriptor(self):
        embedder = DeterministicHashEmbedder(dimension=128)

        first = embedder.detect(b"image-bytes")
        second = embedder.detect(b"image-bytes")

        np.testing.assert_array_equal(first.descriptor, second.descriptor)
        assert first.confidence == 1.0
        assert embedder.get_dimension() == 128

    def test_different_images_differ(self):
        embedder = DeterministicHashEmbedder()

        a = embedder.detect(b"alice").descriptor
        b = embedder.detect(b"bob").descriptor

        assert euclidean_distance(a, b) > 0.5
        assert abs(np.linalg.norm(a) - 1.0) < 1e-5

    def test_no_face(self):
        with pytest.raises(ValueError, match="No face detected"):
            DeterministicHashEmbedder().detect(b"")
