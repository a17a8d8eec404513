"""Prompt templates."""

TRANSCRIPTION_PLACEHOLDER = "{transcription}"
SUMMARIES_PLACEHOLDER = "{summaries}"
SUMMARY_PLACEHOLDER = "{summary}"


def format_chunk_prompt(template: str, text: str) -> str:
    return template.replace(TRANSCRIPTION_PLACEHOLDER, text)


def format_combine_prompt(template: str, combined_summaries: str) -> str:
    # Older templates used {transcription} for the combine step as well
    return (template
            .replace(SUMMARIES_PLACEHOLDER, combined_summaries)
            .replace(TRANSCRIPTION_PLACEHOLDER, combined_summaries))


def format_title_prompt(template: str, summary: str) -> str:
    return template.replace(SUMMARY_PLACEHOLDER, summary)
