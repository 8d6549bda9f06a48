"""Tests for manifest loading."""

from pathlib import Path

import pytest

from api_operator.config import MAX_MANIFEST_FILE_SIZE_BYTES
from api_operator.spec_loader import (
    SpecLoadError,
    dump_manifest,
    load_manifest,
    load_manifest_text,
    parse_manifest,
)

MANIFEST = """\
apiVersion: apigatewayv2.services.k8s.aws/v1alpha1
kind: API
metadata:
  name: pets
  namespace: shop
  generation: 2
spec:
  name: pets
  protocolType: HTTP
  tags:
    zeta: "1"
    alpha: "2"
"""


class TestLoadManifest:
    """Tests for load_manifest."""

    def test_load(self, tmp_path: Path) -> None:
        path = tmp_path / "api.yaml"
        path.write_text(MANIFEST)

        resource = load_manifest(path)

        assert resource.identity == "shop/pets"
        assert resource.metadata.generation == 2
        assert list(resource.spec.tags) == ["zeta", "alpha"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SpecLoadError, match="not found"):
            load_manifest(tmp_path / "missing.yaml")

    def test_oversized_file(self, tmp_path: Path) -> None:
        path = tmp_path / "big.yaml"
        path.write_text("x" * (MAX_MANIFEST_FILE_SIZE_BYTES + 1))

        with pytest.raises(SpecLoadError, match="maximum size"):
            load_manifest(path)


class TestLoadManifestText:
    """Tests for parsing manifest text."""

    def test_invalid_yaml(self) -> None:
        with pytest.raises(SpecLoadError, match="Invalid YAML"):
            load_manifest_text("spec: [unclosed")

    def test_not_a_mapping(self) -> None:
        with pytest.raises(SpecLoadError, match="YAML mapping"):
            load_manifest_text("- a\n- b\n")

    def test_spec_not_a_mapping(self) -> None:
        with pytest.raises(SpecLoadError, match="Spec section"):
            parse_manifest({"metadata": {"name": "a"}, "spec": "nope"})

    def test_validation_errors_are_formatted(self) -> None:
        text = MANIFEST.replace("protocolType: HTTP", "protocolType: GRPC")

        with pytest.raises(SpecLoadError) as exc_info:
            load_manifest_text(text, "api.yaml")

        message = str(exc_info.value)
        assert message.startswith("Validation failed for api.yaml:")
        assert "spec.protocolType" in message

    def test_wrong_kind(self) -> None:
        with pytest.raises(SpecLoadError, match="kind"):
            load_manifest_text(MANIFEST.replace("kind: API", "kind: Route"))


class TestDumpManifest:
    """Tests for writing manifests back."""

    def test_dump_keeps_tag_order_and_drops_unset(self) -> None:
        resource = load_manifest_text(MANIFEST)

        text = dump_manifest(resource)

        assert text.index("zeta") < text.index("alpha")
        assert "description" not in text
        assert load_manifest_text(text).spec == resource.spec
