"""
Funnel Progression Tracker - named multi-step funnels with per-user step pointers.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Iterable

from app.analytics.recorder import AnalyticsRecorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunnelStep:
    step: int
    name: str
    url: str
    expected_action: str

    def matches(self, url: Optional[str] = None, action: Optional[str] = None) -> bool:
        if url:
            if self.url == url:
                return True
            if "*" in self.url and url.startswith(self.url.replace("*", "")):
                return True
        return bool(action) and self.expected_action == action


@dataclass
class ConversionFunnel:
    name: str
    title: str
    steps: List[FunnelStep]
    # user id -> highest step reached; never decreases
    user_journey: Dict[str, int] = field(default_factory=dict)

    def current_step(self, user_id: str) -> int:
        return self.user_journey.get(user_id, 0)


def _steps(*rows) -> List[FunnelStep]:
    return [
        FunnelStep(step=index, name=name, url=url, expected_action=action)
        for index, (name, url, action) in enumerate(rows, start=1)
    ]


PREDEFINED_FUNNELS = {
    "registration": (
        "User Registration",
        _steps(
            ("Landing Page", "/", "page_view"),
            ("Sign Up Page", "/auth/sign-up", "page_view"),
            ("Email Entered", "/auth/sign-up", "email_entered"),
            ("OTP Verified", "/auth/verify-otp", "otp_verified"),
            ("Profile Created", "/profile/edit", "profile_completed"),
        ),
    ),
    "subscription": (
        "Subscription Purchase",
        _steps(
            ("Free User", "/dashboard", "page_view"),
            ("Upgrade Prompt", "/dashboard", "upgrade_prompt_shown"),
            ("Pricing Page", "/pricing", "page_view"),
            ("Plan Selected", "/pricing", "plan_selected"),
            ("Payment Completed", "/subscription/success", "subscription_upgrade_completed"),
        ),
    ),
    "connection": (
        "Profile to Connection",
        _steps(
            ("Profile Viewed", "/profile/*", "profile_view"),
            ("Interest Sent", "/profile/*", "profile_interest_sent"),
            ("Interest Accepted", "/interests", "interest_accepted"),
            ("Chat Started", "/chat/*", "chat_opened"),
            ("Messages Exchanged", "/chat/*", "chat_message_sent"),
        ),
    ),
}


class FunnelTracker:
    """
    Advances users through funnels one step per event.

    Only the step after a user's current one is compared, so a user can
    never skip ahead or move backwards.
    """

    def __init__(self, recorder: AnalyticsRecorder, predefined: bool = True):
        self.recorder = recorder
        self.funnels: Dict[str, ConversionFunnel] = {}
        if predefined:
            for key, (title, steps) in PREDEFINED_FUNNELS.items():
                self.define_funnel(key, title, steps)

    def define_funnel(self, key: str, title: str, steps: Iterable[FunnelStep]) -> ConversionFunnel:
        steps = sorted(steps, key=lambda s: s.step)
        if [s.step for s in steps] != list(range(1, len(steps) + 1)):
            raise ValueError("Funnel steps must be numbered 1..n")

        funnel = ConversionFunnel(name=key, title=title, steps=steps)
        self.funnels[key] = funnel
        return funnel

    def get_funnel(self, key: str) -> ConversionFunnel:
        funnel = self.funnels.get(key)
        if funnel is None:
            raise KeyError(f"Funnel '{key}' not found")
        return funnel

    def check_funnel_progression(
        self,
        user_id: Optional[str],
        url: Optional[str] = None,
        action: Optional[str] = None,
    ) -> List[str]:
        """Returns the keys of funnels the user advanced in."""
        if not user_id:
            return []

        advanced = []
        for key, funnel in self.funnels.items():
            next_step = funnel.current_step(user_id) + 1
            if next_step > len(funnel.steps):
                continue

            if funnel.steps[next_step - 1].matches(url, action):
                funnel.user_journey[user_id] = next_step
                self.recorder.track_conversion(
                    f"funnel_{key}_step_{next_step}",
                    key,
                    next_step,
                    user_id=user_id,
                )
                advanced.append(key)
                logger.debug(f"User {user_id} reached step {next_step} of funnel {key}")

        return advanced

    def get_funnel_analytics(self, key: str) -> Dict[str, Any]:
        funnel = self.get_funnel(key)

        user_steps = list(funnel.user_journey.values())
        total_users = len(user_steps)

        step_conversions = []
        for step in funnel.steps:
            users = sum(1 for reached in user_steps if reached >= step.step)
            step_conversions.append({
                "step": step.step,
                "name": step.name,
                "users": users,
                "conversionRate": users / total_users * 100 if total_users > 0 else 0,
            })

        drop_off_points = []
        for current, following in zip(step_conversions, step_conversions[1:]):
            current_users = current["users"]
            drop_off_points.append({
                "fromStep": current["step"],
                "toStep": following["step"],
                "dropOffRate": (
                    (current_users - following["users"]) / current_users * 100
                    if current_users > 0 else 0
                ),
            })

        return {
            "name": funnel.title,
            "totalUsers": total_users,
            "stepConversions": step_conversions,
            "dropOffPoints": drop_off_points,
        }
