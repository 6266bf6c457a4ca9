"""Prompt templates and context builders for each analysis level."""

from typing import List, Optional

from portfolio_ai.models import Creator, Project

IMAGE_ANALYSIS_PROMPT = """Describe this image in detail. Cover:
1. Composition and design elements
2. Palette and overall mood
3. Subject and content
4. Artistic style and technique
5. Quality of execution
6. Likely uses or applications

Answer in 2-3 paragraphs suitable for portfolio presentation and search."""

VIDEO_ANALYSIS_PROMPT = """Describe this video in detail. Cover:
1. Storytelling and narrative
2. Cinematography and production quality
3. Editing, motion graphics or animation
4. Color grading and mood
5. Sound design and music, where it can be inferred
6. Creative concept and execution
7. Technical craftsmanship
8. Audience and commercial applications

Answer in 2-3 paragraphs suitable for portfolio presentation and search."""

PROJECT_ANALYSIS_PROMPT = """Analyze this creative project using its description and the analyses of its media. Cover:
1. Creative concept and execution
2. Technical skill and craftsmanship
3. Visual coherence across the pieces
4. Originality
5. Professional quality
6. Audience and commercial potential
7. Notable strengths
8. Style and artistic approach

Answer in 2-3 paragraphs that capture the project for portfolio presentation and search."""

PORTFOLIO_ANALYSIS_PROMPT = """Analyze this creative portfolio and write an overview of the creator. Cover:
1. Creative vision and direction
2. Range of skills shown
3. Technical skill across mediums
4. Professional quality and competitiveness
5. Distinctive style and voice
6. Target market and commercial appeal
7. Strongest projects
8. Areas of specialization
9. Creative growth visible across the work
10. Industry positioning

Answer in 3-4 paragraphs written for prospective clients and employers."""

SUMMARY_SEPARATOR = "\n\n---\n\n"


def build_project_context(project: Project, summaries: List[str]) -> str:
    description = project.description or "No description provided"
    return (
        f"Project Title: {project.title}\n"
        f"Project Description: {description}\n\n"
        f"Number of analyzed media items: {len(summaries)}\n\n"
        f"Media analysis summaries:\n"
        + SUMMARY_SEPARATOR.join(summaries)
    )


def build_portfolio_context(creator: Optional[Creator], projects: List[Project]) -> str:
    lines = [f"Analyzing a professional portfolio of {len(projects)} projects"]

    if creator is not None:
        lines.append(f"Creator: {creator.username}")
        if creator.primary_role:
            lines.append(f"Primary Role: {', '.join(creator.primary_role)}")
        if creator.bio:
            lines.append(f"Bio: {creator.bio}")

    sections = []
    for project in projects:
        sections.append(
            f"Project: {project.title}\n"
            f"Description: {project.description or 'No description provided'}\n"
            f"AI Analysis Summary: {project.summary}"
        )

    return "\n".join(lines) + "\n\n" + SUMMARY_SEPARATOR.join(sections)


def compose_prompt(prompt: str, context: str) -> str:
    return f"{prompt}\n\n{context}"
