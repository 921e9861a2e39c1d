"""
Reflection walkthrough: Transcript → Checkpoints → Question → Evaluation → Tutor

Demonstrates one pass through the tutoring loop against a local store:
1. Store a chapter with a transcript
2. Pick reflection points (randomized spacing)
3. Generate a personalized reflection question
4. Evaluate an answer and update learning memory
5. Chat with the tutor about the missed concept

Needs GROQ_API_KEY (or OPENAI_API_KEY) for steps 3-5; without it the
question and evaluation fall back to their safe defaults.
"""

import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import config, token_tracker
from src.errors import UpstreamUnavailable
from src.models.reflection_point import Chapter
from src.models.transcript import normalize_transcript, transcript_text
from src.orchestrator import ReflectionEngine
from src.utils.store import ReflectionStore

CAPTIONS = [
    {"start": 0, "duration": 8, "text": "Today we look at how plants make their own food."},
    {"start": 45, "duration": 9, "text": "Photosynthesis happens inside chloroplasts."},
    {"start": 110, "duration": 10, "text": "Chlorophyll absorbs light energy, mostly red and blue light."},
    {"start": 190, "duration": 9, "text": "Water is split, releasing oxygen as a by-product."},
    {"start": 260, "duration": 12, "text": "The Calvin cycle uses carbon dioxide to build glucose."},
    {"start": 340, "duration": 8, "text": "Glucose stores the captured energy for the plant."},
]


def main():
    # ==================== Step 1: Store Chapter ====================
    print("=" * 60)
    print("STEP 1: Storing chapter transcript")
    print("=" * 60)

    store = ReflectionStore(":memory:").open()
    engine = ReflectionEngine(store)
    segments = normalize_transcript(CAPTIONS)
    store.upsert_chapter(
        Chapter(
            id="ch-photosynthesis",
            title="Photosynthesis",
            video_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            transcript=segments,
        )
    )
    print(f"✓ Stored {len(segments)} segments")
    print()

    # ==================== Step 2: Reflection Points ====================
    print("=" * 60)
    print("STEP 2: Selecting reflection points")
    print("=" * 60)

    points = engine.generate_reflection_points("ch-photosynthesis", "random")
    for point in points["points"]:
        print(f"  ⏸ {point['time']:.0f}s - {point['topic']}")
    print()

    # ==================== Step 3: Question ====================
    print("=" * 60)
    print("STEP 3: Generating a reflection question")
    print("=" * 60)

    question = engine.generate_question(
        topic="Photosynthesis",
        transcript_text=transcript_text(segments),
        student_id="demo-student",
    )
    print(f"❓ {question['question']}")
    print(f"  (model: {question['modelUsed']})")
    print()

    # ==================== Step 4: Evaluation ====================
    print("=" * 60)
    print("STEP 4: Evaluating an answer")
    print("=" * 60)

    answer = "Plants store water in their leaves."
    evaluation = engine.evaluate_answer(
        question=question["question"],
        answer=answer,
        topic="Photosynthesis",
        student_id="demo-student",
        reference_answer=question["referenceAnswer"],
    )
    print(f"  Correct: {evaluation['correct']}  Score: {evaluation['score']}")
    print(f"  Feedback: {evaluation['feedback']}")
    print(f"  Memory: {engine.performance_summary('demo-student')}")
    print()

    # ==================== Step 5: Tutor ====================
    print("=" * 60)
    print("STEP 5: Tutor conversation")
    print("=" * 60)

    try:
        reply = engine.chat(
            [{"role": "user", "content": "Why was my answer wrong?"}],
            {
                "topic": "Photosynthesis",
                "question": question["question"],
                "wrongAnswer": answer,
                "referenceAnswer": question["referenceAnswer"],
                "transcriptContext": transcript_text(segments),
            },
        )
        print(f"🧑‍🏫 [{reply['status']}] {reply['message']}")
    except UpstreamUnavailable as e:
        print(f"⚠ Tutor unavailable: {e.message}")

    print()
    print(token_tracker.summary())
    store.close()


if __name__ == "__main__":
    problems = config.validate()
    for problem in problems:
        print(f"⚠ Config: {problem}")
    main()
