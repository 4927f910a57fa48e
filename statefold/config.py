"""Command-line and environment configuration for the block history, fold and servers."""

from __future__ import annotations

import argparse
import ipaddress
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

DEFAULT_WS_ENDPOINT = "ws://localhost:8545"
DEFAULT_HTTP_ENDPOINT = "http://localhost:8545"
DEFAULT_MAX_DEPTH = 1000
DEFAULT_TIMEOUT = 60

DEFAULT_CONCURRENT_EVENTS_FETCH = 15
DEFAULT_GENESIS_BLOCK = 0
DEFAULT_SAFETY_MARGIN = 20

DEFAULT_DEFAULT_CONFIRMATIONS = 7
DEFAULT_MAX_DECODING_MESSAGE_SIZE = 100 * 1024 * 1024
DEFAULT_SERVER_ADDRESS = "0.0.0.0:50051"


class ConfigError(Exception):
    """The configuration is missing a value or holds an invalid one."""


def _environ(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def _non_negative_int(text: str) -> int:
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {text}")
    return value


def _or(value, default):
    return default if value is None else value


class _AppendReplacingDefault(argparse.Action):
    """Append option values, discarding the default on the first occurrence."""

    def __call__(self, parser, namespace, values, option_string=None):
        current = getattr(namespace, self.dest, None)
        items = [] if current is None or current is self.default else list(current)
        items.append(values)
        setattr(namespace, self.dest, items)


def _parse_socket_address(text: str) -> tuple[str, int]:
    if text.startswith("["):
        host, sep, port_text = text[1:].partition("]:")
        if not sep:
            raise ValueError(f"invalid socket address syntax: {text!r}")
        address = ipaddress.ip_address(host)
        if address.version != 6:
            raise ValueError(f"invalid socket address syntax: {text!r}")
    else:
        host, sep, port_text = text.rpartition(":")
        if not sep:
            raise ValueError(f"invalid socket address syntax: {text!r}")
        ipaddress.IPv4Address(host)
    if not (port_text.isascii() and port_text.isdigit()) or int(port_text) > 0xFFFF:
        raise ValueError(f"invalid socket address syntax: {text!r}")
    return host, int(port_text)


@dataclass(frozen=True)
class BlockHistoryConfig:
    """Endpoints, subscription timeout (seconds) and maximum depth of the block history."""

    ws_endpoint: str = DEFAULT_WS_ENDPOINT
    http_endpoint: str = DEFAULT_HTTP_ENDPOINT
    block_timeout: float = float(DEFAULT_TIMEOUT)
    max_depth: int = DEFAULT_MAX_DEPTH

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser, environ=None) -> None:
        env = _environ(environ)
        parser.add_argument(
            "--bh-ws-endpoint",
            default=env.get("BH_WS_ENDPOINT"),
            help="URL of websocket endpoint for block history",
        )
        parser.add_argument(
            "--bh-http-endpoint",
            default=env.get("BH_HTTP_ENDPOINT"),
            help="URL of http endpoint for block history",
        )
        parser.add_argument(
            "--bh-block-timeout",
            type=_non_negative_int,
            default=env.get("BH_BLOCK_TIMEOUT"),
            help="Timeout value (secs) for block subscription",
        )
        parser.add_argument(
            "--bh-max-depth",
            type=_non_negative_int,
            default=env.get("BH_MAX_DEPTH"),
            help="How far back the block history reaches from the most recent block",
        )

    @classmethod
    def from_namespace(cls, namespace: argparse.Namespace) -> BlockHistoryConfig:
        return cls(
            ws_endpoint=_or(namespace.bh_ws_endpoint, DEFAULT_WS_ENDPOINT),
            http_endpoint=_or(namespace.bh_http_endpoint, DEFAULT_HTTP_ENDPOINT),
            block_timeout=float(_or(namespace.bh_block_timeout, DEFAULT_TIMEOUT)),
            max_depth=_or(namespace.bh_max_depth, DEFAULT_MAX_DEPTH),
        )

    @classmethod
    def from_args(cls, argv: Sequence[str] | None = None, environ=None) -> BlockHistoryConfig:
        parser = argparse.ArgumentParser(
            prog="bh_config", description="Configuration for block-history"
        )
        cls.add_arguments(parser, environ)
        return cls.from_namespace(parser.parse_args(argv))


@dataclass(frozen=True)
class StateFoldConfig:
    """Settings for folding: event fetch concurrency, genesis, error codes and margin."""

    concurrent_events_fetch: int = DEFAULT_CONCURRENT_EVENTS_FETCH
    genesis_block: int = DEFAULT_GENESIS_BLOCK
    query_limit_error_codes: tuple[int, ...] = field(default_factory=tuple)
    safety_margin: int = DEFAULT_SAFETY_MARGIN

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser, environ=None) -> None:
        env = _environ(environ)
        parser.add_argument(
            "--sf-concurrent-events-fetch",
            type=_non_negative_int,
            default=env.get("SF_CONCURRENT_EVENTS_FETCH", DEFAULT_CONCURRENT_EVENTS_FETCH),
            help="Concurrent events fetch for logs query",
        )
        parser.add_argument(
            "--sf-genesis-block",
            type=_non_negative_int,
            default=env.get("SF_GENESIS_BLOCK", DEFAULT_GENESIS_BLOCK),
            help="Genesis block number for state fold access",
        )

        codes_env = env.get("SF_QUERY_LIMIT_ERROR_CODES")
        codes_default: list[int] = []
        if codes_env is not None:
            try:
                codes_default = [int(codes_env)]
            except ValueError as err:
                raise ConfigError(
                    f"invalid SF_QUERY_LIMIT_ERROR_CODES value: {codes_env!r}"
                ) from err
        parser.add_argument(
            "--sf-query-limit-error-codes",
            type=int,
            action=_AppendReplacingDefault,
            default=codes_default,
            help="Query limit error codes for state fold access",
        )
        parser.add_argument(
            "--sf-safety-margin",
            type=_non_negative_int,
            default=env.get("SF_SAFETY_MARGIN", DEFAULT_SAFETY_MARGIN),
            help="Safety margin for state fold",
        )

    @classmethod
    def from_namespace(cls, namespace: argparse.Namespace) -> StateFoldConfig:
        return cls(
            concurrent_events_fetch=namespace.sf_concurrent_events_fetch,
            genesis_block=namespace.sf_genesis_block,
            query_limit_error_codes=tuple(namespace.sf_query_limit_error_codes or ()),
            safety_margin=namespace.sf_safety_margin,
        )

    @classmethod
    def from_args(cls, argv: Sequence[str] | None = None, environ=None) -> StateFoldConfig:
        parser = argparse.ArgumentParser(
            prog="sf_config", description="Configuration for state fold"
        )
        cls.add_arguments(parser, environ)
        return cls.from_namespace(parser.parse_args(argv))


def _add_max_decoding_size(parser: argparse.ArgumentParser, env: Mapping[str, str]) -> None:
    parser.add_argument(
        "--ss-max-decoding-message-size",
        type=_non_negative_int,
        default=env.get("SS_MAX_DECODING_MESSAGE_SIZE", DEFAULT_MAX_DECODING_MESSAGE_SIZE),
        help="Maximum size of a decoded message",
    )


@dataclass(frozen=True)
class StateClientConfig:
    """Settings for a client of the state-fold server."""

    grpc_endpoint: str
    default_confirmations: int = DEFAULT_DEFAULT_CONFIRMATIONS
    max_decoding_message_size: int = DEFAULT_MAX_DECODING_MESSAGE_SIZE

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser, environ=None) -> None:
        env = _environ(environ)
        parser.add_argument(
            "--sc-grpc-endpoint",
            default=env.get("SC_GRPC_ENDPOINT"),
            help="URL of state-fold server grpc",
        )
        parser.add_argument(
            "--sc-default-confirmations",
            type=_non_negative_int,
            default=env.get("SC_DEFAULT_CONFIRMATIONS"),
            help="Default confirmations",
        )
        _add_max_decoding_size(parser, env)

    @classmethod
    def from_namespace(cls, namespace: argparse.Namespace) -> StateClientConfig:
        if namespace.sc_grpc_endpoint is None:
            raise ConfigError("Configuration missing server manager endpoint")
        return cls(
            grpc_endpoint=namespace.sc_grpc_endpoint,
            default_confirmations=_or(
                namespace.sc_default_confirmations, DEFAULT_DEFAULT_CONFIRMATIONS
            ),
            max_decoding_message_size=namespace.ss_max_decoding_message_size,
        )

    @classmethod
    def from_args(cls, argv: Sequence[str] | None = None, environ=None) -> StateClientConfig:
        parser = argparse.ArgumentParser(
            prog="sc_config", description="Configuration for state-client-lib"
        )
        cls.add_arguments(parser, environ)
        return cls.from_namespace(parser.parse_args(argv))


@dataclass(frozen=True)
class StateServerConfig:
    """Settings for the state-fold server, including fold and block history settings."""

    state_fold: StateFoldConfig
    block_history: BlockHistoryConfig
    server_address: tuple[str, int]
    max_decoding_message_size: int = DEFAULT_MAX_DECODING_MESSAGE_SIZE

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser, environ=None) -> None:
        env = _environ(environ)
        StateFoldConfig.add_arguments(parser, env)
        BlockHistoryConfig.add_arguments(parser, env)
        parser.add_argument(
            "--ss-server-address",
            default=env.get("SS_SERVER_ADDRESS"),
            help="Server address",
        )
        _add_max_decoding_size(parser, env)

    @classmethod
    def from_namespace(cls, namespace: argparse.Namespace) -> StateServerConfig:
        address_text = _or(namespace.ss_server_address, DEFAULT_SERVER_ADDRESS)
        try:
            server_address = _parse_socket_address(address_text)
        except ValueError as err:
            raise ConfigError(f"Error loading block-history configuration: {err}") from err
        return cls(
            state_fold=StateFoldConfig.from_namespace(namespace),
            block_history=BlockHistoryConfig.from_namespace(namespace),
            server_address=server_address,
            max_decoding_message_size=namespace.ss_max_decoding_message_size,
        )

    @classmethod
    def from_args(cls, argv: Sequence[str] | None = None, environ=None) -> StateServerConfig:
        parser = argparse.ArgumentParser(
            prog="sate_server_config",
            description="Configuration for state-fold state-server",
        )
        cls.add_arguments(parser, environ)
        return cls.from_namespace(parser.parse_args(argv))