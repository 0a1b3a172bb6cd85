"""Security headers applied to every portal response"""

import logging
from dataclasses import dataclass, field
from typing import Dict

from config import Config

logger = logging.getLogger(__name__)


@dataclass
class SecurityConfig:
    """Security configuration settings"""

    enable_hsts: bool = field(default_factory=lambda: Config.IS_PRODUCTION)
    hsts_max_age: int = 31536000  # 1 year
    content_security_policy: str = (
        "default-src 'self'; frame-ancestors 'none'; object-src 'none'; base-uri 'self'"
    )


class SecurityMiddleware:
    """Main security middleware class"""

    def __init__(self, config: SecurityConfig = None):
        self.config = config or SecurityConfig()

    def generate_security_headers(self) -> Dict[str, str]:
        """Generate security headers for responses"""
        headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "no-referrer",
            "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
            "Content-Security-Policy": self.config.content_security_policy,
        }
        if self.config.enable_hsts:
            headers["Strict-Transport-Security"] = f"max-age={self.config.hsts_max_age}; includeSubDomains"
        return headers

    def apply(self, response) -> None:
        for name, value in self.generate_security_headers().items():
            response.headers.setdefault(name, value)
