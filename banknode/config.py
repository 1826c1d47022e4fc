"""
Loading and validation of the node configuration file (YAML).

The node must never run on an unvalidated configuration, so every problem is
reported as a ConfigError and treated as fatal by the entry point.
"""
import ipaddress

import yaml

from banknode.protocol.errors import ConfigError

MIN_PORT = 1024
MAX_PORT = 65535


class IpRange:
    def __init__(self, start, end):
        self.start = start
        self.end = end

    def addresses(self):
        first = int(ipaddress.IPv4Address(self.start))
        last = int(ipaddress.IPv4Address(self.end))
        for value in range(first, last + 1):
            yield str(ipaddress.IPv4Address(value))

    def __repr__(self):
        return f"IpRange({self.start!r}, {self.end!r})"


class PortRange:
    def __init__(self, start, end):
        self.start = start
        self.end = end

    def ports(self):
        return range(self.start, self.end + 1)

    def __repr__(self):
        return f"PortRange({self.start}, {self.end})"


class NodeConfig:
    def __init__(self, ip_address, app_port, timeout_ms, max_connections,
                 scan_ip_ranges, scan_port_ranges, accounts_file="accounts.json",
                 log_dir="logs", log_level="DEBUG"):
        self.ip_address = ip_address
        self.app_port = app_port
        self.timeout_ms = timeout_ms
        self.max_connections = max_connections
        self.scan_ip_ranges = scan_ip_ranges
        self.scan_port_ranges = scan_port_ranges
        self.accounts_file = accounts_file
        self.log_dir = log_dir
        self.log_level = log_level

    @property
    def timeout_s(self):
        return self.timeout_ms / 1000.0

    def candidate_ports(self):
        ports = []
        for port_range in self.scan_port_ranges:
            for port in port_range.ports():
                if port not in ports:
                    ports.append(port)
        return ports


def validate_ip(value, field):
    if not isinstance(value, str):
        raise ConfigError(f"{field} must be an IPv4 address, got {value!r}")
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        raise ConfigError(f"{field} must be an IPv4 address, got {value!r}") from None
    return value


def validate_port(value, field):
    if isinstance(value, bool) or not isinstance(value, int) or not MIN_PORT <= value <= MAX_PORT:
        raise ConfigError(f"{field} must be a port between {MIN_PORT} and {MAX_PORT}, got {value!r}")
    return value


def validate_positive(value, field):
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{field} must be a number greater than 0, got {value!r}")
    return value


def _ranges(raw, field, legacy_start, legacy_end):
    if field in raw:
        entries = raw[field]
        if not isinstance(entries, list) or not entries:
            raise ConfigError(f"{field} must be a non-empty list of {{start, end}} entries")
    elif legacy_start in raw and legacy_end in raw:
        entries = [{"start": raw[legacy_start], "end": raw[legacy_end]}]
    else:
        raise ConfigError(f"Missing {field}")
    for entry in entries:
        if not isinstance(entry, dict) or "start" not in entry or "end" not in entry:
            raise ConfigError(f"Every {field} entry needs start and end")
    return entries


def build_config(raw):
    """Validate a parsed config mapping and turn it into a NodeConfig."""
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a mapping")
    for key in ("ip_address", "app_port", "timeout_ms", "max_connections"):
        if key not in raw:
            raise ConfigError(f"Missing {key}")

    ip_ranges = []
    for entry in _ranges(raw, "scan_ip_ranges", "scan_ip_start", "scan_ip_end"):
        start = validate_ip(entry["start"], "scan_ip_ranges.start")
        end = validate_ip(entry["end"], "scan_ip_ranges.end")
        if ipaddress.IPv4Address(end) < ipaddress.IPv4Address(start):
            raise ConfigError(f"Scan IP range end {end} is lower than start {start}")
        ip_ranges.append(IpRange(start, end))

    port_ranges = []
    for entry in _ranges(raw, "scan_port_ranges", "scan_port_start", "scan_port_end"):
        start = validate_port(entry["start"], "scan_port_ranges.start")
        end = validate_port(entry["end"], "scan_port_ranges.end")
        if end < start:
            raise ConfigError(f"Scan port range end {end} is lower than start {start}")
        port_ranges.append(PortRange(start, end))

    log_level = str(raw.get("log_level", "DEBUG")).upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigError(f"Unknown log_level {log_level!r}")

    return NodeConfig(
        ip_address=validate_ip(raw["ip_address"], "ip_address"),
        app_port=validate_port(raw["app_port"], "app_port"),
        timeout_ms=validate_positive(raw["timeout_ms"], "timeout_ms"),
        max_connections=validate_positive(raw["max_connections"], "max_connections"),
        scan_ip_ranges=ip_ranges,
        scan_port_ranges=port_ranges,
        accounts_file=str(raw.get("accounts_file", "accounts.json")),
        log_dir=raw.get("log_dir", "logs"),
        log_level=log_level,
    )


def load_config(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Failed to read configuration {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse configuration {path}: {e}") from e
    return build_config(raw)
