from meeting_pipeline.services.notes import (
    EMPTY_SUMMARY,
    NoteActionItem,
    NoteSegment,
    generate_summary,
)


def _segments(*texts, speaker="Speaker 1"):
    return [NoteSegment(id=f"seg-{i}", speaker=speaker, text=t) for i, t in enumerate(texts)]


def test_long_transcript_is_cut_at_700_chars_with_ellipsis():
    # "A: " + 997 chars -> joined transcript of exactly 1000 chars
    seg = NoteSegment(id="s1", speaker="A", text="x" * 997)
    out = generate_summary([seg])

    assert out.summary.startswith("## Summary\n")
    body = out.summary[len("## Summary\n"):]
    assert body.endswith("...")
    assert len(body) == 703
    assert body[:700] == ("A: " + "x" * 997)[:700]


def test_short_transcript_is_kept_whole():
    seg = NoteSegment(id="s1", speaker="A", text="y" * 47)
    out = generate_summary([seg])

    body = out.summary[len("## Summary\n"):]
    assert body == "A: " + "y" * 47
    assert not body.endswith("...")


def test_exactly_700_chars_has_no_ellipsis():
    seg = NoteSegment(id="s1", speaker="A", text="z" * 697)
    body = generate_summary([seg]).summary[len("## Summary\n"):]
    assert len(body) == 700
    assert not body.endswith("...")


def test_summary_joins_speaker_and_text():
    out = generate_summary(
        [
            NoteSegment(id="1", speaker="Ana", text="Hello."),
            NoteSegment(id="2", speaker="Bo", text="Hi there."),
        ]
    )
    assert out.summary == "## Summary\nAna: Hello. Bo: Hi there."


def test_empty_input_yields_placeholder():
    out = generate_summary([])
    assert out.summary == EMPTY_SUMMARY
    assert out.key_points == []
    assert out.action_items == []


def test_key_points_are_first_five_texts_in_order():
    out = generate_summary(_segments("one", "two", "three", "four", "five", "six", "seven"))
    assert out.key_points == ["one", "two", "three", "four", "five"]


def test_action_item_extraction_picks_cued_segment():
    segs = [
        NoteSegment(id="a", speaker="Speaker 2", text="We will ship Friday"),
        NoteSegment(id="b", speaker="Speaker 1", text="Nice weather today"),
    ]
    out = generate_summary(segs)
    assert out.action_items == [
        NoteActionItem(task="We will ship Friday", owner_name="Speaker 2", source_segment_id="a")
    ]


def test_action_cues_are_case_insensitive_and_word_bounded():
    out = generate_summary(
        _segments(
            "TODO: update the deck",
            "Next steps are unclear",
            "Done by Monday",
            "Nearby cafe was good",
            "Byte order is fine",
            "Willing volunteers",
        )
    )
    assert [a.task for a in out.action_items] == [
        "TODO: update the deck",
        "Next steps are unclear",
        "Done by Monday",
    ]


def test_action_items_capped_at_five():
    out = generate_summary(_segments(*[f"I will do task {i}" for i in range(8)]))
    assert len(out.action_items) == 5
    assert out.action_items[-1].task == "I will do task 4"
