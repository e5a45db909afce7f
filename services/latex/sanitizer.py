"""
LaTeX sanitizer.

Turns raw, inconsistently-delimited math-bearing text (OCR output, pasted
word-processor content, MathPix exports) into text where every math run uses
canonical delimiters, complex expressions sit in display blocks, and all
environments and braces are closed.

Stages run in a fixed order over a tokenized segment list:

1. delimiter normalization
2. complexity promotion (structural markers, then numeric heuristics)
3. artifact repair
4. text/math separation
5. equation formatting
6. subject rules (subject detected from keywords unless given)
7. operator spacing
8. structural validation (strict mode only)
9. matrix reconstruction
10. layout
"""
from __future__ import annotations

from typing import Any, Optional, Union

from core.config import HeuristicLimits, settings
from core.logger import logger
from services.latex.artifacts import repair_artifacts
from services.latex.complexity import promote_complex
from services.latex.delimiters import MATH_SPAN_PATTERN, tokenize
from services.latex.equations import format_equations
from services.latex.matrix_reconstructor import reconstruct_matrices
from services.latex.segments import SanitizeOptions, SubjectHint, serialize
from services.latex.separator import separate_text_and_math
from services.latex.spacing import layout, normalize_spacing
from services.latex.subjects import apply_subject_rules, detect_subject
from services.latex.validator import validate_segments


class LatexSanitizer:
    """Runs the full sanitation pipeline with one set of heuristic limits."""

    def __init__(self, limits: Optional[HeuristicLimits] = None) -> None:
        self.limits = limits or settings.limits

    def sanitize(self, text: Any, options: Optional[SanitizeOptions] = None) -> str:
        """
        Sanitize one piece of math-bearing text.

        Args:
            text: Raw input. Anything that is not a non-empty string yields "".
            options: Subject hint and strict flag.

        Returns:
            Canonically delimited text. Running the result through
            ``sanitize`` again returns it unchanged.
        """
        if not text or not isinstance(text, str):
            return ""
        options = options or SanitizeOptions()

        segments = tokenize(text)
        segments = promote_complex(segments, self.limits)
        segments = repair_artifacts(segments, self.limits)
        segments = separate_text_and_math(segments, self.limits)
        segments = format_equations(segments, self.limits)

        subject = options.subject
        if subject is SubjectHint.AUTO:
            subject = detect_subject(serialize(segments))
        segments = apply_subject_rules(segments, subject)

        segments = normalize_spacing(segments)
        if options.strict:
            segments = validate_segments(segments)
        segments = reconstruct_matrices(segments, self.limits)
        return layout(segments)

    def sanitize_mixed_content(self, content: Any, options: Optional[SanitizeOptions] = None) -> Any:
        """Sanitize only the delimited math spans inside markup.

        Everything outside the spans (tags, attributes, prose) is returned
        byte-for-byte; non-string input is returned as given.
        """
        if not content or not isinstance(content, str):
            return content
        return MATH_SPAN_PATTERN.sub(lambda match: self.sanitize(match.group(0), options), content)


default_sanitizer = LatexSanitizer()


def _options(subject: Union[SubjectHint, str, None], strict: bool) -> SanitizeOptions:
    return SanitizeOptions(subject=SubjectHint(subject or SubjectHint.AUTO), strict=strict)


def sanitize(
    text: Any,
    subject: Union[SubjectHint, str, None] = None,
    strict: bool = True,
) -> str:
    """Sanitize ``text`` with the default limits."""
    return default_sanitizer.sanitize(text, _options(subject, strict))


def sanitize_mixed_content(content: Any, subject: Union[SubjectHint, str, None] = None) -> Any:
    """Sanitize math spans embedded in HTML or prose, leaving the rest intact."""
    return default_sanitizer.sanitize_mixed_content(content, _options(subject, True))


def sanitize_mathpix_latex(latex: Any, subject: Union[SubjectHint, str, None] = None) -> str:
    """Sanitize a MathPix export in strict mode."""
    if not latex or not isinstance(latex, str):
        return ""
    logger.debug("Sanitizing MathPix export (%d chars)", len(latex))
    return sanitize(latex, subject=subject)
