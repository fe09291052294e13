from moderation import leniency


class TestRoastingDetection:
    def test_marker_with_targets_implies_roasting(self):
        res = leniency.analyze("you dance like a penguin on roller skates", targeted_users=["friend-1"])
        assert res.roasting.is_roasting is True
        assert res.context_aware is True
        assert res.contextual_score == 0.9
        assert res.is_safe is True

    def test_marker_without_targets_is_penalized(self):
        res = leniency.analyze("you dance like a penguin on roller skates")
        assert res.roasting.is_roasting is False
        assert res.contextual_score == 0.8
        assert [t["tier"] for t in res.flagged_terms] == ["marker"]

    def test_mutual_is_an_input_signal(self):
        res = leniency.analyze("lame", declared_roasting=True, is_mutual=True)
        assert res.roasting.is_mutual is True
        assert leniency.analyze("lame", declared_roasting=True).roasting.is_mutual is False


class TestPenalties:
    def test_moderate_terms_excused_when_roasting(self):
        plain = leniency.analyze("you look stupid and ugly")
        roast = leniency.analyze("you look stupid and ugly", declared_roasting=True)
        assert plain.contextual_score == 0.5
        assert plain.is_safe is False
        assert roast.contextual_score == 0.7
        assert roast.is_safe is True
        assert all(t["excused"] for t in roast.flagged_terms)

    def test_severe_terms_never_excused(self):
        res = leniency.analyze("you idiot, you loser", declared_roasting=True, is_mutual=True)
        assert res.roasting.intensity == "severe"
        assert res.is_safe is False
        assert not any(t["excused"] for t in res.flagged_terms)

    def test_severe_intensity_removes_moderate_excuse(self):
        res = leniency.analyze("stupid idiot", declared_roasting=True)
        moderate = [t for t in res.flagged_terms if t["tier"] == "moderate"]
        assert moderate and moderate[0]["excused"] is False

    def test_whole_word_matching(self):
        res = leniency.analyze("the skill of a diet plan")
        assert res.flagged_terms == []
        assert res.roasting.intensity == "mild"

    def test_score_is_clamped(self):
        res = leniency.analyze("idiot loser hate kill die waste of space")
        assert res.contextual_score == 0.0
