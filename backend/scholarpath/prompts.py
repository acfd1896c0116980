from __future__ import annotations
from .schemas import GenerationContext


def _header(ctx: GenerationContext) -> str:
	codes = ", ".join(ctx.indicator_codes) or "[Indicator Code]"
	return (
		f"School: {ctx.school}\n"
		f"Class: {ctx.class_name}\n"
		f"Subject: {ctx.subject_name}\n"
		f"Strand: {ctx.strand_name}\n"
		f"Sub-Strand: {ctx.topic_name}\n"
		f"Term: {ctx.term}\n"
		f"Week: {ctx.week}\n"
		f"Day/Date: {ctx.day_date or '[Day/Date]'}\n"
		f"Duration: {ctx.duration or '[Duration]'}\n"
		f"Class Size: {ctx.class_size if ctx.class_size is not None else 45}\n"
		f"Content Standard (Code): {ctx.content_standard_code}\n"
		f"Indicator Code(s): {codes}\n"
		f"Reference: {ctx.reference or '[Reference]'}\n"
	)


def build_teacher_note_prompt(ctx: GenerationContext) -> str:
	return (
		"You are a Ghanaian master teacher and curriculum expert.\n"
		"Write a professionally formatted Markdown lesson note for the lesson below.\n"
		"Rules:\n"
		"- Use the lesson details faithfully.\n"
		"- Derive a realistic Performance Indicator from the indicator code(s).\n"
		"- Derive the Week Ending (Friday) date from the Day/Date.\n"
		"- Pick 3-4 core competencies and realistic, accessible teaching materials.\n"
		"- Lay the lesson out as three phases: Starter, Main (with 3 activities, an evaluation and an assignment), Plenary/Reflection.\n"
		"- No placeholders and no preamble: start directly with the '### TEACHER INFORMATION' heading.\n\n"
		f"Lesson details:\n{_header(ctx)}"
	)


def build_learner_note_prompt(ctx: GenerationContext) -> str:
	return (
		"You write learner-friendly notes for Ghanaian basic school pupils.\n"
		f"Write a short study note on \"{ctx.topic_name}\" for {ctx.class_name} {ctx.subject_name}.\n"
		"Guidelines:\n"
		"- Simple English, short sentences, friendly tone.\n"
		"- Bullet points for key learning points and definitions.\n"
		"- One or two everyday Ghanaian examples.\n"
		"- Keep it concise. Output Markdown only, no preamble.\n\n"
		f"Lesson details:\n{_header(ctx)}"
	)


def quiz_breakdown(total: int) -> dict:
	"""Split a question budget across the four generated sections."""
	mcq = max(1, round(total * 0.5))
	true_false = max(0, round(total * 0.2))
	short_answer = max(0, round(total * 0.2))
	essay = max(0, total - mcq - true_false - short_answer)
	return {"mcq": mcq, "trueFalse": true_false, "shortAnswer": short_answer, "essay": essay}


def build_quiz_prompt(ctx: GenerationContext) -> str:
	counts = quiz_breakdown(ctx.num_questions)
	return (
		"You are a WAEC-style assessment writer.\n"
		f"Write a quiz on \"{ctx.topic_name}\" for {ctx.class_name} {ctx.subject_name}.\n"
		f"Produce exactly {counts['mcq']} multiple-choice, {counts['trueFalse']} true/false, "
		f"{counts['shortAnswer']} short-answer and {counts['essay']} essay questions.\n"
		"Multiple-choice questions have exactly 4 options and ONE correct option.\n"
		"Return ONLY a JSON object with keys:\n"
		"  mcq: array of {question, options (array of 4 strings), correctIndex (0-3), explanation}\n"
		"  trueFalse: array of {statement, answer (true or false), explanation}\n"
		"  shortAnswer: array of {question, answer}\n"
		"  essay: array of {question, answer (marking guide)}\n"
		"No markdown, no extra commentary.\n\n"
		f"Lesson details:\n{_header(ctx)}"
	)
