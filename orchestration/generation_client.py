"""
✍️ GENERATION CLIENTS
=====================
Turn a (prospect, offering) pair into an outreach draft.

CLIENTS:
- HttpGenerationClient: POSTs the pair to the external generation service
- TemplateGenerationClient: deterministic local writer for setups without
  a service (GENERATION_ENDPOINT empty)

The client is chosen once, when the orchestrator is built. A failing service
call is reported as a failure, never papered over with a template draft.
"""

from typing import Any, Dict, Optional

import requests
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from config.settings import settings, GenerationSettings
from models.errors import GenerationServiceError, GenerationTimeoutError
from models.outreach import Offering, Prospect


def build_payload(prospect: Prospect, offering: Offering) -> Dict[str, Any]:
    """JSON body sent to the generation service."""
    return {
        "prospect": {
            "name": prospect.name,
            "sector": prospect.sector,
            "budget": prospect.estimated_budget,
            "company_size": prospect.company_size,
            "needs": prospect.needs,
        },
        "offering": {
            "name": offering.name,
            "sector": offering.sector,
            "price": offering.price,
            "features": list(offering.features),
        },
    }


class HttpGenerationClient:
    """
    Client for the external draft generation service.

    Transport errors and timeouts are retried up to ``max_attempts`` in total;
    an HTTP error status or a response without ``draft_content`` is final.

    Usage:
        client = HttpGenerationClient("https://gen.example.com/drafts", api_key="...")
        text = client.generate(prospect, offering)
    """

    name = "http"

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout or settings.generation.timeout_seconds
        self.max_attempts = max_attempts or settings.generation.max_attempts
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        retryer = Retrying(
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.5, max=4),
            reraise=True,
        )
        return retryer(
            self.session.post,
            self.endpoint,
            json=payload,
            headers=self._headers(),
            timeout=self.timeout,
        )

    def generate(self, prospect: Prospect, offering: Offering) -> str:
        """
        Request a draft for ``prospect`` about ``offering``.

        Returns:
            Non-blank draft text

        Raises:
            GenerationTimeoutError: no answer within the timeout
            GenerationServiceError: transport failure, non-2xx or unusable body
        """
        logger.debug(f"Requesting draft for {prospect.id} / {offering.id} from {self.endpoint}")
        try:
            response = self._post(build_payload(prospect, offering))
        except requests.Timeout as e:
            raise GenerationTimeoutError(
                f"Generation service timed out after {self.timeout}s"
            ) from e
        except requests.RequestException as e:
            raise GenerationServiceError(f"Generation service unreachable: {e}") from e

        if not 200 <= response.status_code < 300:
            raise GenerationServiceError(
                f"Generation service returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GenerationServiceError(
                "Generation service returned invalid JSON", status_code=response.status_code
            ) from e

        content = body.get("draft_content") if isinstance(body, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise GenerationServiceError(
                "Generation service response has no draft_content",
                status_code=response.status_code,
            )
        return content


class TemplateGenerationClient:
    """Local writer filling a fixed outreach template. Never fails."""

    name = "template"

    TEMPLATE = """Hello {name},

I build AI agents for the {sector} sector, and {offering} could be a good fit for {company}.

{pitch}
{features}
{needs}Pricing starts at {price}, in line with a {budget} budget.

Would you have 15 minutes this week for a quick call to see how it could help?

Best regards,
[Your Name]"""

    def generate(self, prospect: Prospect, offering: Offering) -> str:
        features = ""
        if offering.features:
            features = "\nWhat it does:\n" + "\n".join(f"- {f}" for f in offering.features[:3]) + "\n"

        needs = ""
        if prospect.needs:
            needs = f"\nAbout your needs ({prospect.needs}), we can tailor the setup to you.\n\n"

        pitch = offering.description[:100] if offering.description else offering.name

        return self.TEMPLATE.format(
            name=prospect.name,
            sector=offering.sector,
            offering=offering.name,
            company=prospect.company or "your team",
            pitch=pitch,
            features=features,
            needs=needs,
            price=f"{offering.price:,.0f}€",
            budget=prospect.estimated_budget,
        )


def build_generation_client(config: Optional[GenerationSettings] = None):
    """HTTP client when an endpoint is configured, template writer otherwise."""
    config = config or settings.generation
    if config.is_configured:
        logger.info(f"✅ Draft generation via {config.endpoint}")
        return HttpGenerationClient(
            endpoint=config.endpoint,
            api_key=config.api_key or None,
            timeout=config.timeout_seconds,
            max_attempts=config.max_attempts,
        )
    logger.warning("⚠️ GENERATION_ENDPOINT not set - using template drafts")
    return TemplateGenerationClient()
