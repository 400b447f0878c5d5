"""Keyword tables used by the signal extractor (frozen).

Markers are matched as whole words. Domain, system and severity entries are
stems: they match any word that starts with them ("vulnerab" matches
"vulnerability" and "vulnerable").
"""

SEQUENCE_MARKERS: tuple[str, ...] = (
    "then",
    "next",
    "finally",
    "afterwards",
    "after that",
    "followed by",
    "subsequently",
    "once done",
)

DECISION_MARKERS: tuple[str, ...] = (
    "if",
    "whether",
    "either",
    "otherwise",
    "depending on",
    "unless",
    "versus",
    "vs",
    "trade-off",
    "tradeoff",
    "choose between",
    "decide between",
    "alternatively",
)

# Canonical system name -> stems that indicate the system is touched
SYSTEM_STEMS: dict[str, tuple[str, ...]] = {
    "database": ("database", "db", "postgres", "mysql", "sqlite", "schema migration"),
    "cache": ("cache", "redis", "memcache"),
    "queue": ("queue", "kafka", "rabbitmq", "pubsub"),
    "api": ("api", "endpoint", "graphql", "rest "),
    "frontend": ("frontend", "front-end", "browser"),
    "backend": ("backend", "back-end", "server"),
    "auth": ("authenticat", "authoriz", "login", "oauth", "jwt", "session"),
    "storage": ("storage", "s3", "bucket", "filesystem"),
    "search": ("search index", "elasticsearch", "opensearch"),
    "gateway": ("gateway", "load balancer", "proxy"),
    "scheduler": ("scheduler", "cron", "background job"),
    "notifications": ("websocket", "email", "notification", "webhook"),
}

DOMAIN_STEMS: dict[str, tuple[str, ...]] = {
    "architecture": (
        "architect",
        "system design",
        "refactor",
        "microservice",
        "coupling",
        "module boundar",
        "component",
    ),
    "security": (
        "security",
        "vulnerab",
        "exploit",
        "injection",
        "xss",
        "csrf",
        "cve",
        "privilege escalation",
        "credential",
        "secret",
        "sanitiz",
    ),
    "performance": (
        "performance",
        "latency",
        "slow",
        "bottleneck",
        "throughput",
        "memory leak",
        "n+1",
        "cpu",
        "optimi",
    ),
    "database": ("database", "query", "index", "migration", "transaction", "sql"),
    "infrastructure": (
        "deploy",
        "kubernetes",
        "k8s",
        "docker",
        "terraform",
        "infrastructure",
        "ci/cd",
    ),
    "concurrency": (
        "concurren",
        "race condition",
        "deadlock",
        "thread",
        "async",
        "parallel",
        "lock",
    ),
    "ui": ("user interface", "ux ", "css", "layout", "liveview", "template"),
    "testing": ("test", "coverage", "regression", "flaky"),
}

PRODUCTION_MARKERS: tuple[str, ...] = ("production", "prod", "live traffic")

PRODUCTION_ENVIRONMENTS: frozenset[str] = frozenset({"production", "prod"})
