"""Scenario files: markdown with optional YAML frontmatter seeding a session setup."""

from pathlib import Path

import frontmatter

from src.models import SessionSetup


def parse_scenario(file_path: Path) -> SessionSetup:
    """Parse a scenario file into a SessionSetup.

    Frontmatter keys: company, job_title, topic. The body is the topic
    when no topic key is given. Missing fields come back empty so CLI
    flags can fill them in.

    Raises:
        ValueError: If the file has neither a job title nor a topic.
    """
    post = frontmatter.load(str(file_path))
    metadata = dict(post.metadata)
    topic = str(metadata.get("topic") or post.content).strip()
    job_title = str(metadata.get("job_title") or "").strip()
    if not topic and not job_title:
        raise ValueError(f"{file_path.name}: scenario has neither job_title nor topic")
    return SessionSetup(
        topic=topic,
        job_title=job_title,
        company=str(metadata.get("company") or "").strip(),
        source=str(file_path),
    )
