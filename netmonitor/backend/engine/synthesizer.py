"""
engine/synthesizer.py

TrafficSynthesizer — produces plausible TrafficLog candidates for the
synthesis task.

Shape of one batch:
  - 1 … 5×multiplier ALLOW records (multiplier applies during business hours)
  - ~70% HTTPS on :443, otherwise a random protocol / port (20% on :80)
  - payload sizes drawn from four bands, weighted toward small requests
  - with `suspicious_probability`, one extra BLOCK record to a known-bad host

The generator is deterministic for a seeded random.Random and never touches
the store; the engine persists and publishes what it returns.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from ..models import Action, Alert, Severity, TrafficLog

PROTOCOLS = ("HTTPS", "HTTP", "DNS", "TCP", "UDP", "ICMP")

COMMON_HOSTS = (
    "google.com", "github.com", "stackoverflow.com", "microsoft.com",
    "cloudflare.com", "amazonaws.com", "facebook.com", "twitter.com",
    "linkedin.com", "youtube.com", "reddit.com", "wikipedia.org",
    "apple.com", "mozilla.org", "adobe.com", "dropbox.com",
    "slack.com", "discord.com", "zoom.us", "office365.com",
)

CORPORATE_HOSTS = (
    "corporate-intranet.local", "fileserver.local", "email.company.com",
    "vpn.company.com", "backup.company.com", "monitoring.company.com",
)

SUSPICIOUS_HOSTS = (
    "suspicious-tracking.net", "malware-distribution.org", "phishing-attempt.com",
    "crypto-miner.xyz", "data-harvester.info", "fake-banking.net",
)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Edge/120.0.0.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

# (low, high) byte bands and their weights; most traffic is small
_SIZE_BANDS: tuple[tuple[int, int], ...] = (
    (100, 1_099),
    (1_000, 10_999),
    (10_000, 109_999),
    (100_000, 1_099_999),
)
_SIZE_WEIGHTS = (0.6, 0.25, 0.1, 0.05)


@dataclass(slots=True)
class SyntheticBatch:
    normal: list[TrafficLog] = field(default_factory=list)
    suspicious: TrafficLog | None = None


class TrafficSynthesizer:
    """
    Args:
        rng:                    Random source (seed it for reproducible tests).
        business_hours:         Inclusive (start, end) local hours.
        multiplier:             Volume multiplier during business hours.
        suspicious_probability: Chance per batch of one BLOCK record.
        clock:                  Returns the current local datetime.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        business_hours: tuple[int, int] = (9, 17),
        multiplier: int = 3,
        suspicious_probability: float = 0.1,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._rng = rng or random.Random()
        self.business_hours = business_hours
        self.multiplier = max(1, multiplier)
        self.suspicious_probability = suspicious_probability
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_business_hours(self) -> bool:
        start, end = self.business_hours
        return start <= self._clock().hour <= end

    def generate_batch(self) -> SyntheticBatch:
        business = self.is_business_hours()
        multiplier = self.multiplier if business else 1
        count = self._rng.randint(1, 5 * multiplier)
        hosts = COMMON_HOSTS + (CORPORATE_HOSTS if business else ())

        batch = SyntheticBatch(normal=[self._normal_log(hosts) for _ in range(count)])
        if self._rng.random() < self.suspicious_probability:
            batch.suspicious = self._suspicious_log()
        return batch

    @staticmethod
    def suspicious_alert(log: TrafficLog) -> Alert:
        """HIGH SUSPICIOUS_TRAFFIC alert for a stored suspicious log."""
        return Alert(
            severity=Severity.HIGH,
            type="SUSPICIOUS_TRAFFIC",
            title="Suspicious Traffic Detected",
            description=f"Blocked connection to suspicious domain: {log.destination_host}",
            source_ip=log.source_ip,
            metadata={
                "blockedHost": log.destination_host,
                "logId": log.id,
            },
        )

    # ------------------------------------------------------------------
    # Record builders
    # ------------------------------------------------------------------

    def _normal_log(self, hosts: tuple[str, ...]) -> TrafficLog:
        rng = self._rng
        is_https = rng.random() > 0.3
        if is_https:
            port = 443
        elif rng.random() > 0.8:
            port = 80
        else:
            port = rng.randrange(65535)

        metadata = {
            "userAgent": rng.choice(USER_AGENTS),
            "responseCode": 404 if rng.random() > 0.95 else 200,
        }
        if is_https:
            metadata["method"] = "GET"

        return TrafficLog(
            source_ip=self._internal_ip(),
            destination_host=rng.choice(hosts),
            destination_ip=self._public_ip(),
            destination_port=port,
            protocol="HTTPS" if is_https else rng.choice(PROTOCOLS),
            action=Action.ALLOW,
            data_size=self._data_size(),
            duration=rng.randrange(3000) + 50,
            metadata=metadata,
        )

    def _suspicious_log(self) -> TrafficLog:
        rng = self._rng
        return TrafficLog(
            source_ip=f"192.168.{rng.randrange(255)}.{rng.randrange(255)}",
            destination_host=rng.choice(SUSPICIOUS_HOSTS),
            destination_ip=f"192.168.{rng.randrange(255)}.{rng.randrange(255)}",
            destination_port=rng.randrange(65535),
            protocol="HTTP",
            action=Action.BLOCK,
            data_size=rng.randrange(1000),
            duration=rng.randrange(1000),
            metadata={
                "reason": "Suspicious domain detected",
                "threat_level": "high",
            },
        )

    def _data_size(self) -> int:
        low, high = self._rng.choices(_SIZE_BANDS, weights=_SIZE_WEIGHTS)[0]
        return self._rng.randint(low, high)

    def _internal_ip(self) -> str:
        r = self._rng.randrange
        octet_range = self._rng.randrange(3)
        if octet_range == 0:
            return f"192.168.{r(255)}.{r(255)}"
        if octet_range == 1:
            return f"10.{r(255)}.{r(255)}.{r(255)}"
        return f"172.{16 + r(16)}.{r(255)}.{r(255)}"

    def _public_ip(self) -> str:
        r = self._rng.randrange
        block = self._rng.randrange(4)
        if block == 0:
            return f"8.8.{r(255)}.{r(255)}"
        if block == 1:
            return f"1.1.{r(255)}.{r(255)}"
        if block == 2:
            return f"{74 + r(50)}.{r(255)}.{r(255)}.{r(255)}"
        return f"{151 + r(50)}.{r(255)}.{r(255)}.{r(255)}"
