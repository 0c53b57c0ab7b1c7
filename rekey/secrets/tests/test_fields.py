"""Tests for secret field discovery."""

import pytest

from rekey.secrets.fields import (
    DEFAULT_SECRET_FIELDS,
    secret_field_names,
    transform_secrets,
)


def _paths(payload):
    found = []
    transform_secrets(payload, lambda path, value: found.append(path) or value, DEFAULT_SECRET_FIELDS)
    return found


class TestSecretFieldNames:
    def test_defaults(self):
        assert "password" in secret_field_names()
        assert secret_field_names() == DEFAULT_SECRET_FIELDS

    def test_extras(self):
        assert "sharedSecret" in secret_field_names(["sharedSecret"])


class TestTransformSecrets:
    def test_nested_paths(self):
        payload = {
            "hostPort": "db:5432",
            "authType": {"password": "p"},
            "sslConfig": {"caCertificate": "cert", "sslKey": "k"},
        }
        assert _paths(payload) == ["authType.password", "sslConfig.sslKey"]

    def test_lists_addressed_by_index(self):
        payload = {"brokers": [{"password": "a"}, {"password": "b"}]}
        assert _paths(payload) == ["brokers.0.password", "brokers.1.password"]

    def test_returns_copy(self):
        payload = {"nested": {"password": "p"}, "port": 5432}
        result = transform_secrets(payload, lambda path, value: value.upper(), DEFAULT_SECRET_FIELDS)
        assert result == {"nested": {"password": "P"}, "port": 5432}
        assert payload == {"nested": {"password": "p"}, "port": 5432}
        assert result["nested"] is not payload["nested"]

    def test_non_string_secret_left_alone(self):
        payload = {"password": None, "token": {"value": "t"}}
        assert _paths(payload) == []

    def test_failure_leaves_input_intact(self):
        payload = {"a": {"password": "p"}, "b": {"password": "q"}}

        def fail_on_second(path, value):
            if path == "b.password":
                raise RuntimeError("boom")
            return "changed"

        with pytest.raises(RuntimeError):
            transform_secrets(payload, fail_on_second, DEFAULT_SECRET_FIELDS)
        assert payload == {"a": {"password": "p"}, "b": {"password": "q"}}
