"""Unit tests for request payload construction."""
from __future__ import annotations

import pytest
from google.rpc import status_pb2

from gads_client.services import TypeResolver

from gads_client.request_builder import (
    MutateOperation,
    build_mutate_operations,
    build_mutate_request,
    build_operations,
    build_request,
    build_search_request,
    get_field_mask,
    snake_case_keys,
)


def test_update_mask_contains_only_changed_field():
    [operation] = build_operations(
        "update", [{"resource_name": "customers/1/campaigns/2", "name": "Renamed"}]
    )

    assert list(operation["update_mask"].paths) == ["name"]
    assert operation["update"]["name"] == "Renamed"


def test_update_mask_skips_defaults_and_nests_paths():
    mask = get_field_mask(
        {
            "name": "",
            "status": 0,
            "campaignBudget": "customers/1/campaignBudgets/3",
            "network_settings": {"target_search_network": True, "target_content_network": False},
            "labels": [],
        }
    )

    assert list(mask.paths) == ["campaign_budget", "network_settings.target_search_network"]


def test_field_mask_from_protobuf_message():
    mask = get_field_mask(status_pb2.Status(message="changed"))
    assert list(mask.paths) == ["message"]


def test_field_mask_rejects_unknown_types():
    with pytest.raises(TypeError):
        get_field_mask(42)


def test_create_moves_exemption_keys_to_envelope():
    entity = {"ad": {"final_urls": ["https://example.com"]}, "exempt_policy_violation_keys": ["POLICY_X"]}

    [operation] = build_operations("create", [entity])

    assert operation["exempt_policy_violation_keys"] == ["POLICY_X"]
    assert "exempt_policy_violation_keys" not in operation["create"]
    assert "update_mask" not in operation
    # caller's entity is left as it was
    assert entity["exempt_policy_violation_keys"] == ["POLICY_X"]


def test_create_without_exemption_keys_has_no_envelope_field():
    [operation] = build_operations("create", [{"name": "x", "exempt_policy_violation_keys": []}])

    assert operation == {"create": {"name": "x"}}


def test_remove_uses_resource_names():
    operations = build_operations(
        "remove", ["customers/1/campaigns/2", {"resourceName": "customers/1/campaigns/3"}]
    )
    assert operations == [
        {"remove": "customers/1/campaigns/2"},
        {"remove": "customers/1/campaigns/3"},
    ]


def test_unknown_operation_kind_rejected():
    with pytest.raises(ValueError):
        build_operations("upsert", [{}])


def test_mutate_operations_keep_order_and_entity_keys():
    mutations = [
        MutateOperation(entity="CampaignBudget", resource={"amount_micros": 5_000_000}),
        {"entity": "AdGroupAd", "operation": "update", "resource": {"resource_name": "r", "status": 3}},
        {"entity": "Campaign", "operation": "remove", "resource": "customers/1/campaigns/9"},
        MutateOperation(
            entity="AdGroupAd",
            resource={"ad": {"name": "a"}},
            exempt_policy_violation_keys=[{"policy_name": "POLICY_X"}],
        ),
    ]

    operations = build_mutate_operations(mutations)

    assert [next(iter(op)) for op in operations] == [
        "campaign_budget_operation",
        "ad_group_ad_operation",
        "campaign_operation",
        "ad_group_ad_operation",
    ]
    assert list(operations[1]["ad_group_ad_operation"]["update_mask"].paths) == ["status"]
    assert operations[2] == {"campaign_operation": {"remove": "customers/1/campaigns/9"}}
    assert operations[3]["ad_group_ad_operation"]["exempt_policy_violation_keys"] == [
        {"policy_name": "POLICY_X"}
    ]


def test_search_request_drops_unset_options():
    request = build_search_request(
        "1234567890", "SELECT campaign.id FROM campaign", {"pageSize": None, "validate_only": True}
    )
    assert request == {
        "customer_id": "1234567890",
        "query": "SELECT campaign.id FROM campaign",
        "validate_only": True,
    }


def test_mutate_and_service_requests_carry_customer_id():
    operations = [{"create": {"name": "x"}}]

    assert build_mutate_request("1", [], {"partial_failure": True}) == {
        "customer_id": "1",
        "mutate_operations": [],
        "partial_failure": True,
    }
    assert build_request("1", operations) == {"customer_id": "1", "operations": operations}


def test_snake_case_keys_recurses():
    assert snake_case_keys({"finalUrls": [{"urlValue": 1}], "name": "x"}) == {
        "final_urls": [{"url_value": 1}],
        "name": "x",
    }


def test_typed_update_mask_follows_generated_resource():
    campaign = TypeResolver().resource_type("Campaign")

    [operation] = build_operations(
        "update",
        [{"resourceName": "customers/1/campaigns/2", "name": "Renamed", "status": "PAUSED"}],
        message=campaign,
    )

    assert sorted(operation["update_mask"].paths) == ["name", "status"]
    assert operation["update"]["name"] == "Renamed"


def test_typed_update_rejects_unknown_fields():
    campaign = TypeResolver().resource_type("Campaign")

    with pytest.raises(ValueError, match="Campaign"):
        build_operations("update", [{"resource_name": "r", "nmae": "typo"}], message=campaign)


def test_mutate_operations_resolve_types_for_updates_only():
    requested = []

    def resource_type(entity):
        requested.append(entity)
        return TypeResolver().resource_type(entity)

    operations = build_mutate_operations(
        [
            {"entity": "Label", "resource": {"name": "new"}},
            {
                "entity": "AdGroup",
                "operation": "update",
                "resource": {"resource_name": "r", "cpc_bid_micros": 5},
            },
        ],
        resource_type,
    )

    assert requested == ["AdGroup"]
    assert list(operations[1]["ad_group_operation"]["update_mask"].paths) == ["cpc_bid_micros"]
