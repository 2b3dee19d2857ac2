"""
Prompt construction and result parsing for the funnel analysis.

Provider replies are untrusted text: markdown fences are stripped when
present, the JSON object is parsed and then checked field by field.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List

SUGGESTION_COUNT = 4

DEFAULT_SYSTEM_PROMPT = (
    "Você é um especialista em marketing digital e otimização de funis de conversão."
)

_PROMPT_TEMPLATE = """
Você é um especialista em marketing de performance e otimização de funis de conversão (CRO).
Sua tarefa é analisar a coerência entre o texto de um anúncio e o texto de uma página de destino.

Analise os dois textos abaixo:

--- TEXTO DO ANÚNCIO ---
{ad_text}
--- FIM DO TEXTO DO ANÚNCIO ---

--- TEXTO DA PÁGINA DE DESTINO ---
{landing_page_text}
--- FIM DO TEXTO DA PÁGINA DE DESTINO ---

Avalie se a promessa feita no anúncio é cumprida na página de destino, se a linguagem e o tom são
consistentes e se as palavras-chave importantes são mantidas.

Retorne um objeto JSON com a seguinte estrutura e nada mais:
{{
  "funnelCoherenceScore": <número de 0 a 10 representando a coerência entre os dois textos>,
  "adDiagnosis": "<análise concisa dos pontos fortes e fracos do anúncio>",
  "landingPageDiagnosis": "<análise concisa dos pontos fortes e fracos da página>",
  "syncSuggestions": [{suggestion_slots}],
  "optimizedAd": "<nova versão do anúncio, reescrita para ser coerente com a página de destino>"
}}

Mantenha cada sugestão curta e acionável. O anúncio otimizado deve ter aproximadamente o mesmo
tamanho do anúncio original.
"""

_FENCE = re.compile(r"\A```(?:json|JSON)?\s*(.*?)\s*```\Z", re.DOTALL)


def build_funnel_prompt(ad_text: str, landing_page_text: str) -> str:
    """User message asking for the coherence analysis of both texts."""
    slots = ", ".join(f'"<sugestão acionável {i}>"' for i in range(1, SUGGESTION_COUNT + 1))
    return _PROMPT_TEMPLATE.format(
        ad_text=ad_text.strip(),
        landing_page_text=landing_page_text.strip(),
        suggestion_slots=slots
    ).strip()


@dataclass(frozen=True)
class FunnelAnalysisResult:
    """Validated analysis returned to the caller and stored in the cache."""
    funnel_coherence_score: float
    ad_diagnosis: str
    landing_page_diagnosis: str
    sync_suggestions: List[str]
    optimized_ad: str

    @classmethod
    def from_dict(cls, data: Any) -> "FunnelAnalysisResult":
        """Validate a decoded provider payload.

        Raises:
            ValueError: If a field is missing, mistyped or out of range
        """
        if not isinstance(data, dict):
            raise ValueError("analysis payload must be a JSON object")

        score = data.get("funnelCoherenceScore")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValueError("funnelCoherenceScore must be a number")
        if not 0 <= score <= 10:
            raise ValueError(f"funnelCoherenceScore out of range: {score}")

        suggestions = data.get("syncSuggestions")
        if not isinstance(suggestions, list):
            raise ValueError("syncSuggestions must be a list")
        if len(suggestions) < SUGGESTION_COUNT:
            raise ValueError(
                f"syncSuggestions must have {SUGGESTION_COUNT} items, got {len(suggestions)}"
            )
        # Extra suggestions are dropped
        suggestions = suggestions[:SUGGESTION_COUNT]
        if not all(isinstance(s, str) and s.strip() for s in suggestions):
            raise ValueError("syncSuggestions must contain only non-empty strings")

        texts = {}
        for name in ("adDiagnosis", "landingPageDiagnosis", "optimizedAd"):
            value = data.get(name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")
            texts[name] = value.strip()

        return cls(
            funnel_coherence_score=float(score),
            ad_diagnosis=texts["adDiagnosis"],
            landing_page_diagnosis=texts["landingPageDiagnosis"],
            sync_suggestions=[s.strip() for s in suggestions],
            optimized_ad=texts["optimizedAd"]
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation (camelCase, as the web client expects)."""
        return {
            "funnelCoherenceScore": self.funnel_coherence_score,
            "adDiagnosis": self.ad_diagnosis,
            "landingPageDiagnosis": self.landing_page_diagnosis,
            "syncSuggestions": list(self.sync_suggestions),
            "optimizedAd": self.optimized_ad,
        }


def extract_json(content: str) -> Any:
    """Decode the JSON payload of a model reply.

    Strips a ```json fence wrapping the whole reply; otherwise falls back
    to the outermost {...} span so short preambles are tolerated.

    Raises:
        ValueError: If no JSON can be decoded
    """
    if content is None:
        raise ValueError("empty reply")

    text = content.strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    else:
        start, end = text.find("{"), text.rfind("}")
        if start >= 0 and end > start:
            text = text[start:end + 1]

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"reply is not valid JSON: {e}") from e
