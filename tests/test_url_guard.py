"""Tests for the outbound URL guard."""

import unittest

from cluster_services.errors import ValidationError
from cluster_services.url_guard import build_host_patterns, is_cluster_internal, validate_url


class TestValidateUrl(unittest.TestCase):

    def test_cluster_internal_url_allowed(self):
        parsed = validate_url("http://homepage.default.svc.cluster.local:8080/x")
        self.assertEqual(parsed.hostname, "homepage.default.svc.cluster.local")
        self.assertEqual(parsed.port, 8080)
        self.assertEqual(parsed.path, "/x")

    def test_external_host_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_url("http://evil.com")
        self.assertIn("cluster-internal", str(ctx.exception))

    def test_disallowed_port_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_url("http://homepage.default.svc.cluster.local:9999/x")
        self.assertIn("Port 9999 is not allowed", str(ctx.exception))

    def test_no_port_allowed(self):
        validate_url("https://metrics.monitoring.svc.cluster.local/metrics")

    def test_scheme_must_be_http(self):
        for url in (
            "ftp://homepage.default.svc.cluster.local/x",
            "file:///etc/passwd",
            "gopher://homepage.default.svc.cluster.local:8080/",
        ):
            with self.assertRaises(ValidationError, msg=url):
                validate_url(url)

    def test_namespace_outside_allow_list_rejected(self):
        with self.assertRaises(ValidationError):
            validate_url("http://db.production.svc.cluster.local:8080/")

    def test_lookalike_hosts_rejected(self):
        for url in (
            "http://homepage.default.svc.cluster.local.evil.com/",
            "http://homepage.default.svc.cluster.local@evil.com/",
            "http://default.svc.cluster.local/",
            "http://169.254.169.254/latest/meta-data",
        ):
            with self.assertRaises(ValidationError, msg=url):
                validate_url(url)

    def test_unparseable_port_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_url("http://homepage.default.svc.cluster.local:http/")
        self.assertIn("Invalid URL", str(ctx.exception))

    def test_relative_candidate_resolved_against_base(self):
        parsed = validate_url("/swagger.json", "http://api.default.svc.cluster.local:3000")
        self.assertEqual(parsed.geturl(), "http://api.default.svc.cluster.local:3000/swagger.json")

    def test_absolute_candidate_cannot_escape_base(self):
        with self.assertRaises(ValidationError):
            validate_url("http://evil.com/x", "http://api.default.svc.cluster.local:3000")

    def test_custom_port_allow_list(self):
        validate_url("http://api.default.svc.cluster.local:7000/", allowed_ports=[7000])
        with self.assertRaises(ValidationError):
            validate_url("http://api.default.svc.cluster.local:8080/", allowed_ports=[7000])


class TestHostPatterns(unittest.TestCase):

    def test_is_cluster_internal_case_insensitive(self):
        self.assertTrue(is_cluster_internal("Homepage.Default.svc.cluster.local"))
        self.assertFalse(is_cluster_internal(""))

    def test_build_patterns_escapes_namespace(self):
        patterns = build_host_patterns(["team.a"])
        self.assertTrue(patterns[0].fullmatch("svc.team.a.svc.cluster.local"))
        self.assertIsNone(patterns[0].fullmatch("svc.teamxa.svc.cluster.local"))


if __name__ == "__main__":
    unittest.main()
