import pytest

from moderation import lexical


class TestNormalize:
    def test_leetspeak_and_punctuation(self):
        assert lexical.normalize("You are an id10t!!") == ["you", "are", "an", "idiot"]

    def test_symbol_substitution_only_before_letters(self):
        assert lexical.normalize("@sshole") == ["asshole"]
        assert lexical.normalize("wow!") == ["wow"]

    def test_spelled_out_letters_are_joined(self):
        assert lexical.normalize("f u c k off") == ["fuck", "off"]

    def test_short_single_letter_runs_are_kept(self):
        assert lexical.normalize("a b cat") == ["a", "b", "cat"]

    def test_non_string_input(self):
        assert lexical.normalize(None) == []


class TestClassify:
    def test_clean_text_is_safe(self):
        res = lexical.classify("What a lovely day!")
        assert res.is_safe is True
        assert res.severity == "none"
        assert res.categories == ["safe"]
        assert res.safety_score == 100.0
        assert res.confidence == 1.0
        assert res.matches == []

    def test_mild_profanity_stays_safe_with_low_severity(self):
        res = lexical.classify("this is damn good")
        assert res.is_safe is True
        assert res.severity == "low"
        assert res.safety_score == 92.5

    def test_obfuscated_insult_is_flagged(self):
        res = lexical.classify("you are such an id10t")
        assert res.is_safe is False
        assert res.severity == "medium"
        assert res.categories == ["harassment"]
        assert res.safety_score == 82.5
        assert res.confidence == pytest.approx(0.6)

    def test_repeated_letters_collapse(self):
        res = lexical.classify("what a looooser")
        assert res.is_safe is False
        assert any(m["term"] == "loser" for m in res.matches)

    def test_hate_speech_phrase_is_high(self):
        res = lexical.classify("Go back to your country.")
        assert res.is_safe is False
        assert res.severity == "high"
        assert res.categories == ["hate_speech"]

    def test_categories_are_mapped(self):
        res = lexical.classify("send nudes or I will stab you")
        assert res.is_safe is False
        assert res.categories == ["sexual", "violence"]

    def test_confidence_caps_at_point_nine(self):
        res = lexical.classify("idiot loser moron worthless pathetic kill")
        assert res.confidence == 0.9
        assert res.safety_score == 0.0
        assert res.severity == "high"

    def test_never_critical(self):
        res = lexical.classify("subhuman vermin people ethnic cleansing kill murder")
        assert res.severity != "critical"


class TestNeverThrows:
    @pytest.mark.parametrize("text", [None, "", 12345, "🔥🔥🔥", "!!!???", "a" * 20000, "f.u.c.k", "$$$ !!! @@@"])
    def test_score_in_range(self, text):
        res = lexical.classify(text)
        assert 0.0 <= res.safety_score <= 100.0
        assert 0.0 <= res.confidence <= 1.0
