import logging
import re

logger = logging.getLogger("storylab_backend")


def format_prompt(template: str, **kwargs) -> str:
    """
    Replace only the {placeholders} named in kwargs; any other brace pair in
    the template (or in substituted text) is left untouched.
    """
    missing_keys = []

    def replacer(match):
        key = match.group(1)
        if key in kwargs:
            return str(kwargs[key])
        missing_keys.append(key)
        return match.group(0)

    result = re.sub(r'\{(\w+)\}', replacer, template)
    if missing_keys:
        logger.info(f"Missing keys within prompt template: {', '.join(missing_keys)}")
    return result


FRAME_ANALYSIS_PROMPT = """
You are an expert Product Manager analyzing a UI/UX design. Look carefully at the attached image and identify ALL user flows, interactions, and features visible in the design.

Context: {frame_context}
{user_context}

IMPORTANT: Analyze the visual elements you can see in the image:
- Navigation patterns and menus
- Buttons, forms, and input fields
- Data displays, lists, and tables
- Modal dialogs and overlays
- User workflows and step-by-step processes
- Any interactive elements or components

For each distinct user flow or feature you identify, create a detailed user story with:
- title: Specific, action-oriented title describing the feature
- description: As a [specific user type], I want to [specific action] so that [clear benefit]
- acceptance_criteria: 3-5 specific, testable criteria based on what you see
- priority: High/Medium/Low (High for core flows, Medium for secondary features)
- story_points: 1-8 (Fibonacci scale)
- persona: Specific user type (e.g., "Mobile App User", "Admin", "Customer")
- category: Specific component type (e.g., "Authentication", "Data Visualization", "Settings")

Focus on what you can actually SEE in the image. Be specific about visual elements and user flows.

Return ONLY a valid JSON array of user stories. No markdown formatting, no additional text.
"""

# used when a frame has no rendered image (oversized files imported without images)
FRAME_METADATA_PROMPT = """
You are an expert Product Manager. You cannot see the design itself, only its frame description:

Context: {frame_context}
{user_context}

Infer the most likely purpose of this screen from its name and size and write the user stories
a team would need to build it. Each story must have the fields:
title, description ("As a ..., I want ... so that ..."), acceptance_criteria (3-5 items),
priority (High/Medium/Low), story_points (1, 2, 3, 5 or 8), persona, category.

Return ONLY a valid JSON array of user stories. No markdown formatting, no additional text.
"""

SCREEN_LIST_PROMPT = """
You are a Product Manager and must write user stories for these screens of an app:
{screens}

Format:
- As a [type of user], I want [goal], so that [benefit]
Acceptance criteria in Gherkin (Given/When/Then).
"""
