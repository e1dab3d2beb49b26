"""
pruning.py - Deduplication and Format Compression

Two order-preserving stages that shrink the merged rule list.

DEDUPLICATION:
    Exact-line set semantics. The first occurrence wins, so the source order
    declared in the config decides which copy survives.

FORMAT COMPRESSION (optional "Compress" transformation):
    Hosts entries and plain domains are rewritten to ABP form so that all
    three formats can be deduplicated against each other:

        0.0.0.0 ads.example.com  →  ||ads.example.com^
        ads.example.com          →  ||ads.example.com^
        ||ads.example.com^       →  ||ads.example.com^  (unchanged)

    After rewriting, a modifier-free ||sub.example.com^ is redundant when a
    modifier-free ||example.com^ (or any other parent) is also present, since
    the parent already blocks every subdomain. Rules with $modifiers are never
    pruned and never prune others; their behavior is not a plain superset.

    Parent domains are walked with the public suffix list (tldextract), so
    ||example.co.uk^ never prunes against the bare suffix ||co.uk^.
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Final

import tldextract

# Bundled suffix list snapshot only, no network lookups
_tld_extract = tldextract.TLDExtract(suffix_list_urls=())

# ============================================================================
# REGEX PATTERNS
# ============================================================================

# Modifier-free ABP domain rule: ||domain^
ABP_DOMAIN_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\|\|([^\^$|*/\s]+)\^$")

# Hosts format: IP domain [domain2 ...]
HOSTS_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^([\d.:a-fA-F]+)\s+"   # IP address (IPv4 or IPv6)
    r"(.+)$"                 # Rest of line (domains)
)

# Valid domain in a hosts entry
HOSTS_DOMAIN_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z0-9][\w.-]*$")

# Plain domain (simple domain name, at least one dot)
PLAIN_DOMAIN_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+\.?$"
)

# Local/blocking IPs in hosts format
BLOCKING_IPS: Final[frozenset[str]] = frozenset({
    "0.0.0.0", "127.0.0.1", "::1", "::0", "::", "0:0:0:0:0:0:0:0", "0:0:0:0:0:0:0:1",
})

# Local hostnames never worth blocking
LOCAL_HOSTNAMES: Final[frozenset[str]] = frozenset({
    "localhost", "localhost.localdomain", "local", "broadcasthost",
    "ip6-localhost", "ip6-loopback", "ip6-localnet",
    "ip6-mcastprefix", "ip6-allnodes", "ip6-allrouters", "ip6-allhosts",
})


# ============================================================================
# DEDUPLICATION
# ============================================================================

def deduplicate(lines: list[str]) -> list[str]:
    """
    Keep the first occurrence of each exact line.

    Example:
        >>> deduplicate(["a", "b", "a", "c"])
        ['a', 'b', 'c']
    """
    return list(dict.fromkeys(lines))


# ============================================================================
# HELPERS
# ============================================================================

def normalize_domain(domain: str) -> str:
    """Normalize domain to lowercase, without a trailing dot."""
    return domain.lower().strip().rstrip(".")


def extract_hosts_domains(line: str) -> list[str] | None:
    """
    Extract blocked domains from a hosts-style line.

    Returns:
        Domains (local hostnames removed), or None if the line is not a
        blocking hosts entry

    Example:
        >>> extract_hosts_domains("0.0.0.0 ads.example.com tracker.example.net # x")
        ['ads.example.com', 'tracker.example.net']
        >>> extract_hosts_domains("||example.com^") is None
        True
    """
    match = HOSTS_PATTERN.match(line)
    if not match:
        return None

    ip, rest = match.group(1), match.group(2)
    if ip not in BLOCKING_IPS and not ip.startswith("0.") and not ip.startswith("127."):
        return None

    domains = []
    for part in rest.split():
        # Stop at comments
        if part.startswith("#"):
            break
        if HOSTS_DOMAIN_PATTERN.match(part):
            domain = normalize_domain(part)
            if domain and domain not in LOCAL_HOSTNAMES:
                domains.append(domain)
    return domains


@lru_cache(maxsize=65536)
def walk_parent_domains(domain: str) -> tuple[str, ...]:
    """
    Walk up the domain hierarchy, stopping at the registered domain.

    Example:
        >>> walk_parent_domains("a.b.example.com")
        ('b.example.com', 'example.com')
    """
    ext = _tld_extract(domain)
    if not ext.suffix or not ext.domain or not ext.subdomain:
        return ()

    registered = f"{ext.domain}.{ext.suffix}"
    parts = ext.subdomain.split(".")
    parents = [f"{'.'.join(parts[i:])}.{registered}" for i in range(1, len(parts))]
    parents.append(registered)
    return tuple(parents)


def to_abp(line: str) -> list[str]:
    """
    Rewrite one line into ABP form where its format is known.

    Hosts lines may expand to several rules or to none (local hostnames only).
    Unknown formats are returned unchanged.
    """
    domains = extract_hosts_domains(line)
    if domains is not None:
        return [f"||{domain}^" for domain in domains]

    if PLAIN_DOMAIN_PATTERN.match(line):
        domain = normalize_domain(line)
        if domain in LOCAL_HOSTNAMES:
            return []
        return [f"||{domain}^"]

    return [line]


# ============================================================================
# COMPRESSION
# ============================================================================

def compress(lines: list[str]) -> list[str]:
    """
    Convert hosts/plain entries to ABP rules and drop covered subdomains.

    Output order follows the first appearance of each surviving rule.

    Example:
        >>> compress(["0.0.0.0 ads.example.com", "example.com", "||x.org^$important"])
        ['||example.com^', '||x.org^$important']
    """
    converted: list[str] = []
    seen: set[str] = set()
    blocked_domains: set[str] = set()

    # Phase 1: rewrite and collect modifier-free blocked domains
    for line in lines:
        for rule in to_abp(line):
            if rule in seen:
                continue
            seen.add(rule)
            converted.append(rule)
            match = ABP_DOMAIN_PATTERN.match(rule)
            if match:
                blocked_domains.add(normalize_domain(match.group(1)))

    # Phase 2: prune modifier-free rules whose parent is blocked
    kept: list[str] = []
    for rule in converted:
        match = ABP_DOMAIN_PATTERN.match(rule)
        if match and any(
            parent in blocked_domains
            for parent in walk_parent_domains(normalize_domain(match.group(1)))
        ):
            continue
        kept.append(rule)
    return kept
