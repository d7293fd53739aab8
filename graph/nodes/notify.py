from graph.state import OnboardingState
from tools import slack


def notify_team(state: OnboardingState) -> OnboardingState:
    return {"notification": slack.send_onboarding_notification(state)}
