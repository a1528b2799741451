"""
Action target resolution.

A step names its target in natural language ("Login", "Email address",
"Buy"). The resolver maps that text onto a concrete, visible element by
walking an ordered chain of named strategies. The first strategy whose match
becomes visible within the per-strategy timeout wins, provided clicks, fills
and selects land on an enabled element; there is no scoring beyond
declaration order.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from playwright.async_api import Locator, Page

from qualitypilot.browser.inventory import PageInventoryScanner
from qualitypilot.config.settings import get_settings
from qualitypilot.core.types import ActionType, StepDefinition
from qualitypilot.error_handling.exceptions import ResolutionError, ValidationError
from qualitypilot.monitoring.logger import get_logger

CLICKABLE_SELECTOR = (
    'button, a, [role="button"], [role="link"], [role="menuitem"], [role="tab"], '
    'input[type="submit"], input[type="button"], [onclick]'
)
CONTAINER_SELECTOR = (
    'li, article, section, tr, [role="listitem"], [role="row"], '
    '[class*="card"], [class*="item"], [class*="product"], div'
)

UNSUPPORTED_PSEUDO_PATTERN = re.compile(r":(?:contains|has-text)\s*\(", re.IGNORECASE)
HREF_WITH_SPACE_PATTERN = re.compile(
    r"""\[\s*href\s*[*^$|~]?=\s*["'][^"']*\s[^"']*["']\s*\]""", re.IGNORECASE
)
SELECTOR_PATTERN = re.compile(
    r"""^\s*(?:
        [#.][A-Za-z_-][\w-]*          # #id / .class
        | \[                           # [attr=...]
        | \(?//                        # xpath
        | (?:xpath|css|id|data-testid)=
        | [a-z][a-z0-9-]*(?:[.#][\w-]+|\[[^\]]+\]|::?[a-z-]+)  # tag.class, tag[attr], tag:state
      )
      | \s>\s                          # child combinator
    """,
    re.VERBOSE,
)

INPUT_TYPE_HINTS: Tuple[Tuple[str, str], ...] = (
    ("password", 'input[type="password"]'),
    ("email", 'input[type="email"], input[name*="email" i], input[autocomplete="email"]'),
    ("search", 'input[type="search"], [role="searchbox"]'),
    ("phone", 'input[type="tel"]'),
    ("telephone", 'input[type="tel"]'),
    ("url", 'input[type="url"]'),
    ("number", 'input[type="number"]'),
    ("date", 'input[type="date"]'),
    ("message", "textarea"),
    ("comment", "textarea"),
)


class StrategyKind(str, Enum):
    """Families of resolution heuristics."""

    SCOPED_CONTAINER = "scoped-container"
    ROLE_MATCH = "role-match"
    EXACT_TEXT = "exact-text"
    CASE_INSENSITIVE_TEXT = "case-insensitive-text"
    PARTIAL_TEXT = "partial-text"
    TEXT_SCAN = "text-scan"
    LABEL = "label"
    PLACEHOLDER = "placeholder"
    INPUT_TYPE_HINT = "input-type-hint"
    CSS_FALLBACK = "css-fallback"
    ATTRIBUTE_MATCH = "attribute-match"


@dataclass
class ResolutionContext:
    """Execution context available while resolving a target."""

    scope_hint: Optional[str] = None


# Returns None when the strategy does not apply to the target
LocateFn = Callable[[Page, str, ResolutionContext], Optional[Locator]]


@dataclass(frozen=True)
class ResolutionStrategy:
    """One named heuristic in a strategy chain."""

    name: str
    kind: StrategyKind
    locate: LocateFn


@dataclass
class StrategyAttempt:
    name: str
    outcome: str
    detail: Optional[str] = None


@dataclass
class ResolvedTarget:
    """A visible element plus the strategy that found it."""

    element: Locator
    strategy: str
    attempts: List[StrategyAttempt] = field(default_factory=list)


def normalize_text(text: str) -> str:
    return " ".join(text.split())


def looks_like_selector(target: str) -> bool:
    """Heuristic for targets written as CSS/XPath rather than visible text."""
    return bool(SELECTOR_PATTERN.search(target))


def check_target_syntax(target: str) -> Optional[str]:
    """Reason a target can never match, or None when it is usable."""
    if UNSUPPORTED_PSEUDO_PATTERN.search(target):
        return "pseudo-selectors such as :contains() and :has-text() are not supported"
    if HREF_WITH_SPACE_PATTERN.search(target):
        return "href attribute selectors cannot contain spaces"
    return None


def _css_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def attribute_selector(target: str, tags: Sequence[str] = ("",)) -> str:
    """Case-insensitive substring match over identifying attributes."""
    text = _css_string(normalize_text(target))
    slug = _css_string(re.sub(r"\s+", "-", normalize_text(target).lower()))
    clauses = []
    for tag in tags:
        clauses.extend([
            f'{tag}[class*="{slug}" i]',
            f'{tag}[id*="{slug}" i]',
            f'{tag}[data-testid*="{slug}" i]',
            f'{tag}[name*="{slug}" i]',
            f'{tag}[aria-label*="{text}" i]',
            f'{tag}[title*="{text}" i]',
        ])
    return ", ".join(clauses)


# Click family -----------------------------------------------------------

def _within_clickable(scope, target: str):
    name = normalize_text(target)
    return (
        scope.get_by_role("button", name=name)
        .or_(scope.get_by_role("link", name=name))
        .or_(scope.locator(CLICKABLE_SELECTOR).filter(has_text=name))
    )


def _within_form_control(scope, target: str):
    name = normalize_text(target)
    return scope.get_by_label(name).or_(scope.get_by_placeholder(name))


def _scoped(inner: Callable) -> LocateFn:
    def locate(page: Page, target: str, context: ResolutionContext) -> Optional[Locator]:
        if not context.scope_hint:
            return None
        hint = normalize_text(context.scope_hint)
        containers = (
            page.locator(CONTAINER_SELECTOR)
            .filter(has_text=hint)
            .filter(has=inner(page, target))
        )
        # Document order puts nested containers after their ancestors
        return inner(containers.last, target)

    return locate


def _role_match(page: Page, target: str, context: ResolutionContext) -> Locator:
    name = normalize_text(target)
    return page.get_by_role("button", name=name, exact=True).or_(
        page.get_by_role("link", name=name, exact=True)
    )


def _exact_text(page: Page, target: str, context: ResolutionContext) -> Locator:
    return page.get_by_text(target, exact=True)


def _case_insensitive_text(page: Page, target: str, context: ResolutionContext) -> Locator:
    pattern = re.compile(rf"^\s*{re.escape(normalize_text(target))}\s*$", re.IGNORECASE)
    return page.get_by_text(pattern)


def _partial_text(page: Page, target: str, context: ResolutionContext) -> Locator:
    return page.get_by_text(normalize_text(target))


def _text_scan(page: Page, target: str, context: ResolutionContext) -> Locator:
    return page.locator(CLICKABLE_SELECTOR).filter(has_text=normalize_text(target))


def _css_fallback(page: Page, target: str, context: ResolutionContext) -> Optional[Locator]:
    if not looks_like_selector(target):
        return None
    return page.locator(target.strip())


def _attribute_match(page: Page, target: str, context: ResolutionContext) -> Locator:
    return page.locator(attribute_selector(target))


# Fill / select family ---------------------------------------------------

def _label(page: Page, target: str, context: ResolutionContext) -> Locator:
    return page.get_by_label(normalize_text(target))


def _placeholder(page: Page, target: str, context: ResolutionContext) -> Locator:
    return page.get_by_placeholder(normalize_text(target))


def _role_textbox(page: Page, target: str, context: ResolutionContext) -> Locator:
    return page.get_by_role("textbox", name=normalize_text(target))


def _role_combobox(page: Page, target: str, context: ResolutionContext) -> Locator:
    return page.get_by_role("combobox", name=normalize_text(target))


def _input_type_hint(page: Page, target: str, context: ResolutionContext) -> Optional[Locator]:
    words = set(re.findall(r"[a-z]+", target.lower()))
    for keyword, selector in INPUT_TYPE_HINTS:
        if keyword in words:
            return page.locator(selector)
    return None


def _form_attribute_match(page: Page, target: str, context: ResolutionContext) -> Locator:
    return page.locator(attribute_selector(target, tags=("input", "textarea")))


def _select_attribute_match(page: Page, target: str, context: ResolutionContext) -> Locator:
    return page.locator(attribute_selector(target, tags=("select",)))


CLICK_STRATEGIES: Tuple[ResolutionStrategy, ...] = (
    ResolutionStrategy("scoped-container", StrategyKind.SCOPED_CONTAINER, _scoped(_within_clickable)),
    ResolutionStrategy("role-match", StrategyKind.ROLE_MATCH, _role_match),
    ResolutionStrategy("exact-text", StrategyKind.EXACT_TEXT, _exact_text),
    ResolutionStrategy("case-insensitive-text", StrategyKind.CASE_INSENSITIVE_TEXT, _case_insensitive_text),
    ResolutionStrategy("partial-text", StrategyKind.PARTIAL_TEXT, _partial_text),
    ResolutionStrategy("text-scan", StrategyKind.TEXT_SCAN, _text_scan),
    ResolutionStrategy("css-fallback", StrategyKind.CSS_FALLBACK, _css_fallback),
    ResolutionStrategy("attribute-match", StrategyKind.ATTRIBUTE_MATCH, _attribute_match),
)

FILL_STRATEGIES: Tuple[ResolutionStrategy, ...] = (
    ResolutionStrategy("scoped-container", StrategyKind.SCOPED_CONTAINER, _scoped(_within_form_control)),
    ResolutionStrategy("label", StrategyKind.LABEL, _label),
    ResolutionStrategy("placeholder", StrategyKind.PLACEHOLDER, _placeholder),
    ResolutionStrategy("role-textbox", StrategyKind.ROLE_MATCH, _role_textbox),
    ResolutionStrategy("css-fallback", StrategyKind.CSS_FALLBACK, _css_fallback),
    ResolutionStrategy("input-type-hint", StrategyKind.INPUT_TYPE_HINT, _input_type_hint),
    ResolutionStrategy("attribute-match", StrategyKind.ATTRIBUTE_MATCH, _form_attribute_match),
)

SELECT_STRATEGIES: Tuple[ResolutionStrategy, ...] = (
    ResolutionStrategy("scoped-container", StrategyKind.SCOPED_CONTAINER, _scoped(_within_form_control)),
    ResolutionStrategy("label", StrategyKind.LABEL, _label),
    ResolutionStrategy("role-combobox", StrategyKind.ROLE_MATCH, _role_combobox),
    ResolutionStrategy("css-fallback", StrategyKind.CSS_FALLBACK, _css_fallback),
    ResolutionStrategy("attribute-match", StrategyKind.ATTRIBUTE_MATCH, _select_attribute_match),
)

DEFAULT_STRATEGY_CHAINS: Dict[str, Tuple[ResolutionStrategy, ...]] = {
    ActionType.CLICK.value: CLICK_STRATEGIES,
    ActionType.HOVER.value: CLICK_STRATEGIES,
    ActionType.SCROLL.value: CLICK_STRATEGIES,
    ActionType.FILL.value: FILL_STRATEGIES,
    ActionType.SELECT.value: SELECT_STRATEGIES,
}

# Actions whose target must also accept input, not merely be visible
INTERACTIVE_ACTIONS = frozenset(
    {ActionType.CLICK.value, ActionType.FILL.value, ActionType.SELECT.value}
)


class ActionResolver:
    """Maps a step's natural language target onto a visible page element."""

    def __init__(
        self,
        strategy_chains: Optional[Mapping[str, Sequence[ResolutionStrategy]]] = None,
        strategy_timeout_ms: Optional[int] = None,
        scanner: Optional[PageInventoryScanner] = None,
        candidates_limit: Optional[int] = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            strategy_chains: Ordered strategies per action (defaults to the
                built-in click/fill/select chains)
            strategy_timeout_ms: Time each strategy gets to produce a visible match
            scanner: Inventory scanner used to list candidates on failure
            candidates_limit: Maximum candidates listed in a failure message
        """
        settings = get_settings()
        self.strategy_chains = dict(strategy_chains or DEFAULT_STRATEGY_CHAINS)
        self.strategy_timeout_ms = strategy_timeout_ms or settings.strategy_timeout_ms
        self.scanner = scanner or PageInventoryScanner()
        self.candidates_limit = (
            candidates_limit
            if candidates_limit is not None
            else settings.resolution_candidates_limit
        )
        self.logger = get_logger("browser.resolver")

    def strategies_for(self, action: str) -> Sequence[ResolutionStrategy]:
        try:
            return self.strategy_chains[action]
        except KeyError:
            raise ValueError(f"No resolution strategies registered for action: {action}")

    async def resolve(
        self,
        page: Page,
        step: StepDefinition,
        context: Optional[ResolutionContext] = None,
    ) -> ResolvedTarget:
        """
        Resolve the step's target, trying strategies in declared order.

        Raises:
            ValidationError: The step has no target
            ResolutionError: The target is unusable or no strategy matched
        """
        target = step.target
        if target is None or not target.strip():
            raise ValidationError(
                f"{step.action} action requires a target",
                action=step.action,
                missing_fields=["target"],
            )

        chain = self.strategies_for(step.action)
        context = context or ResolutionContext()

        rejection = check_target_syntax(target)
        if rejection:
            raise ResolutionError(
                f'Target "{target}" cannot be resolved: {rejection}',
                action=step.action,
                target=target,
            )

        attempts: List[StrategyAttempt] = []
        for strategy in chain:
            try:
                candidate = strategy.locate(page, target, context)
            except Exception as exc:
                attempts.append(StrategyAttempt(strategy.name, "error", str(exc)))
                self.logger.debug(
                    "Strategy raised while building locator",
                    extra={"strategy": strategy.name, "target": target},
                    exc_info=True,
                )
                continue

            if candidate is None:
                attempts.append(StrategyAttempt(strategy.name, "skipped"))
                continue

            element = candidate.locator("visible=true").first
            try:
                await element.wait_for(state="visible", timeout=self.strategy_timeout_ms)
            except Exception as exc:
                attempts.append(StrategyAttempt(strategy.name, "no-match", str(exc)))
                self.logger.debug(
                    "Strategy found no visible match",
                    extra={"strategy": strategy.name, "target": target},
                )
                continue

            if step.action in INTERACTIVE_ACTIONS and not await self._is_enabled(element):
                attempts.append(StrategyAttempt(strategy.name, "no-match", "not interactable"))
                self.logger.debug(
                    "Strategy matched a disabled element",
                    extra={"strategy": strategy.name, "target": target},
                )
                continue

            attempts.append(StrategyAttempt(strategy.name, "matched"))
            self.logger.info(
                "Resolved target",
                extra={
                    "action": step.action,
                    "target": target,
                    "strategy": strategy.name,
                    "attempts": len(attempts),
                },
            )
            return ResolvedTarget(element=element, strategy=strategy.name, attempts=attempts)

        raise await self._exhausted(page, step, attempts)

    async def _is_enabled(self, element: Locator) -> bool:
        try:
            return await element.is_enabled(timeout=self.strategy_timeout_ms)
        except Exception:
            return False

    async def _exhausted(
        self, page: Page, step: StepDefinition, attempts: List[StrategyAttempt]
    ) -> ResolutionError:
        tried = [a.name for a in attempts if a.outcome != "skipped"]
        skipped = [a.name for a in attempts if a.outcome == "skipped"]

        candidates: List[str] = []
        try:
            inventory = await self.scanner.scan(page)
            candidates = inventory.visible_candidates(self.candidates_limit)
        except Exception:
            self.logger.warning("Could not scan page for candidates", exc_info=True)

        message = (
            f'Could not find element for {step.action} target "{step.target}". '
            f"Tried strategies: {', '.join(tried) or 'none'}"
        )
        if skipped:
            message += f" (not applicable: {', '.join(skipped)})"
        message += f". Visible elements: {', '.join(candidates) if candidates else 'none found'}"

        return ResolutionError(
            message,
            action=step.action,
            target=step.target,
            strategies_attempted=tried,
            visible_candidates=candidates,
        )
