"""Tests for manifest aggregation and persistence."""

from __future__ import annotations

import json
from pathlib import Path

from brightpanda.manifest import SCHEMA_VERSION, Manifest
from brightpanda.models import Edge, EdgeType, Endpoint, HttpMethod, ParseResult, Service


def _result(service: str, filepath: str, *, endpoint_path: str = "/health") -> ParseResult:
    return ParseResult(
        success=True,
        service=Service(name=service, language="python", path="/repo/" + service, files=[filepath]),
        endpoints=[
            Endpoint(
                service=service,
                path=endpoint_path,
                method=HttpMethod.GET,
                handler="health",
                file=filepath,
                line=3,
            )
        ],
        edges=[
            Edge(
                from_service=service,
                to_service="http://x/y",
                type=EdgeType.HTTP_CALL,
                method="get",
                endpoint="http://x/y",
                file=filepath,
                line=5,
                confidence=0.8,
            )
        ],
    )


def test_merging_same_file_twice_does_not_duplicate_service_or_file() -> None:
    manifest = Manifest(repo_name="repo")

    assert manifest.merge_parse_result(_result("orders", "/repo/orders/app.py"))
    assert manifest.merge_parse_result(_result("orders", "/repo/orders/app.py"))

    assert len(manifest.services) == 1
    assert manifest.services[0].files == ["/repo/orders/app.py"]
    assert len(manifest.endpoints) == 2
    assert manifest.languages == ["python"]


def test_merge_adds_new_files_to_existing_service() -> None:
    manifest = Manifest()
    manifest.merge_parse_result(_result("orders", "/repo/orders/app.py"))
    manifest.merge_parse_result(_result("orders", "/repo/orders/views.py"))

    service = manifest.find_service("orders")
    assert service is not None
    assert service.files == ["/repo/orders/app.py", "/repo/orders/views.py"]


def test_merge_rejects_failed_or_missing_results() -> None:
    manifest = Manifest()

    assert manifest.merge_parse_result(None) is False
    assert manifest.merge_parse_result(ParseResult.failed("nope")) is False
    assert manifest.services == []


def test_remove_file_is_idempotent() -> None:
    manifest = Manifest()
    manifest.merge_parse_result(_result("orders", "/repo/orders/app.py"))
    manifest.merge_parse_result(_result("orders", "/repo/orders/views.py", endpoint_path="/v"))

    removed = manifest.remove_file("/repo/orders/app.py")

    assert removed == 3
    assert [endpoint.path for endpoint in manifest.endpoints] == ["/v"]
    assert [edge.file for edge in manifest.edges] == ["/repo/orders/views.py"]
    assert manifest.services[0].files == ["/repo/orders/views.py"]
    assert manifest.remove_file("/repo/orders/app.py") == 0


def test_remove_file_keeps_emptied_services() -> None:
    manifest = Manifest()
    manifest.merge_parse_result(_result("orders", "/repo/orders/app.py"))

    manifest.remove_file("/repo/orders/app.py")

    assert [service.name for service in manifest.services] == ["orders"]
    assert manifest.services[0].file_count == 0


def test_add_service_rejects_duplicate_names() -> None:
    manifest = Manifest()

    assert manifest.add_service(Service(name="a", language="javascript", path="/a"))
    assert manifest.add_service(Service(name="a", language="python", path="/a")) is False
    assert manifest.languages == ["javascript"]


def test_to_dict_matches_manifest_layout() -> None:
    manifest = Manifest(repo_name="shop", timestamp=0)
    manifest.merge_parse_result(_result("orders", "/repo/orders/app.py"))
    manifest.add_endpoint(Endpoint(service="orders", path="/bare"))
    manifest.add_edge(Edge(from_service="orders", to_service="payments", type=EdgeType.RPC))
    manifest.set_stats(files_analyzed=4, files_skipped=2, duration_ms=15)

    data = manifest.to_dict()

    assert data["schema_version"] == SCHEMA_VERSION
    assert data["repo"] == "shop"
    assert data["languages"] == ["python"]
    assert data["scan_metadata"] == {
        "timestamp": "1970-01-01T00:00:00Z",
        "crawler_version": "1.0.0",
        "scan_duration_ms": 15,
        "files_analyzed": 4,
        "files_skipped": 2,
    }
    assert data["services"] == [
        {
            "name": "orders",
            "language": "python",
            "path": "/repo/orders",
            "file_count": 1,
            "files": ["/repo/orders/app.py"],
        }
    ]
    assert data["endpoints"][0] == {
        "service": "orders",
        "path": "/health",
        "method": "GET",
        "handler": "health",
        "file": "/repo/orders/app.py",
        "line": 3,
    }
    assert data["endpoints"][1] == {"service": "orders", "path": "/bare", "method": "GET"}
    assert data["edges"][0]["type"] == "HTTP_CALL"
    assert data["edges"][0]["confidence"] == 0.8
    assert data["edges"][1] == {
        "from": "orders",
        "to": "payments",
        "type": "RPC",
        "confidence": 1.0,
    }


def test_write_and_load_json_round_trip(tmp_path: Path) -> None:
    manifest = Manifest(repo_name="shop")
    manifest.merge_parse_result(_result("orders", "/repo/orders/app.py"))
    target = tmp_path / "out" / "brightpanda.json"

    manifest.write_json(target)
    loaded = Manifest.load_json(target)

    assert json.loads(target.read_text(encoding="utf-8"))["repo"] == "shop"
    assert loaded is not None
    assert loaded.repo_name == "shop"
    assert loaded.services == manifest.services
    assert loaded.endpoints == manifest.endpoints
    assert loaded.edges == manifest.edges
    assert loaded.languages == ["python"]


def test_load_json_handles_missing_and_malformed_files(tmp_path: Path) -> None:
    assert Manifest.load_json(tmp_path / "absent.json") is None

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert Manifest.load_json(broken) is None

    partial = tmp_path / "partial.json"
    partial.write_text(
        json.dumps(
            {
                "repo": "shop",
                "services": [{"name": "orders", "files": ["a.py"]}, {"language": "go"}],
                "endpoints": [{"service": "orders", "path": "/x", "method": "post"}, 7],
                "edges": [{"from": "orders"}],
            }
        ),
        encoding="utf-8",
    )
    loaded = Manifest.load_json(partial)
    assert loaded is not None
    assert [service.name for service in loaded.services] == ["orders"]
    assert [(endpoint.path, endpoint.method) for endpoint in loaded.endpoints] == [
        ("/x", HttpMethod.POST)
    ]
    assert loaded.edges == []


def test_source_files_lists_every_contributing_file() -> None:
    manifest = Manifest()
    manifest.merge_parse_result(_result("orders", "/repo/orders/app.py"))
    manifest.add_endpoint(
        Endpoint(service="orders", path="/x", method=HttpMethod.GET, file="/repo/orders/extra.py")
    )
    manifest.add_edge(Edge(from_service="orders", to_service="payments"))

    assert manifest.source_files() == ["/repo/orders/app.py", "/repo/orders/extra.py"]


def test_load_json_turns_nan_confidence_into_zero(tmp_path: Path) -> None:
    target = tmp_path / "nan.json"
    target.write_text(
        '{"repo": "shop", "edges": [{"from": "orders", "to": "payments", "confidence": NaN}]}',
        encoding="utf-8",
    )

    loaded = Manifest.load_json(target)

    assert loaded is not None
    assert [edge.confidence for edge in loaded.edges] == [0.0]
    assert json.loads(loaded.to_json(), parse_constant=_reject_constant)["edges"][0][
        "confidence"
    ] == 0.0


def _reject_constant(name: str) -> float:
    raise ValueError(f"non-finite value in manifest: {name}")
