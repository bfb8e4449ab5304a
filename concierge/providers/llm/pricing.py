"""Token pricing and cost estimation for Tier3 calls."""

from concierge.config.models.providers import ModelPricing
from concierge.observability.logging import get_logger
from concierge.providers.llm.base import TokenUsage

logger = get_logger(__name__)

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token count (~4 chars per token)."""
    return max(1, len(text) // CHARS_PER_TOKEN)


def bare_model_name(model: str) -> str:
    """Strip provider prefixes: 'openrouter/openai/gpt-4o' -> 'gpt-4o'."""
    return model.rsplit("/", 1)[-1]


class PriceTable:
    """Per-model USD pricing.

    Models missing from the table are billed at the most expensive
    known rate so that budget checks never under-estimate.
    """

    def __init__(self, pricing: dict[str, ModelPricing]) -> None:
        if not pricing:
            raise ValueError("Price table cannot be empty")
        self._pricing = dict(pricing)
        self._ceiling = ModelPricing(
            input_per_1k=max(p.input_per_1k for p in pricing.values()),
            output_per_1k=max(p.output_per_1k for p in pricing.values()),
        )

    def price_for(self, model: str) -> ModelPricing:
        name = bare_model_name(model)
        price = self._pricing.get(name)
        if price is None:
            logger.debug("model_price_unknown", model=model)
            return self._ceiling
        return price

    def cost(self, model: str, usage: TokenUsage) -> float:
        """Cost in USD for reported usage."""
        price = self.price_for(model)
        return (
            usage.prompt_tokens / 1000 * price.input_per_1k
            + usage.completion_tokens / 1000 * price.output_per_1k
        )

    def estimate(self, model: str, prompt: str, max_completion_tokens: int) -> float:
        """Upper-bound cost for a call before it is made."""
        usage = TokenUsage(
            prompt_tokens=estimate_tokens(prompt),
            completion_tokens=max_completion_tokens,
            total_tokens=estimate_tokens(prompt) + max_completion_tokens,
        )
        return self.cost(model, usage)

    def cost_from_text(self, model: str, prompt: str, completion: str) -> float:
        """Cost when the provider did not report usage."""
        usage = TokenUsage(
            prompt_tokens=estimate_tokens(prompt),
            completion_tokens=estimate_tokens(completion),
            total_tokens=estimate_tokens(prompt) + estimate_tokens(completion),
        )
        return self.cost(model, usage)
