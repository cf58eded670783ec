from zerotrust.reputation.models import RiskLevel
from zerotrust.reputation.threat_analyzer import ThreatAnalyzer, ThreatAnalyzerConfig, risk_level_for


def test_phishing_domain_scores_critical(clock):
    analysis = ThreatAnalyzer(clock=clock).analyze("secure-login.new-phish.xyz")

    assert analysis.threat_score == 90
    assert analysis.risk_level == RiskLevel.CRITICAL
    assert analysis.checked_at == clock()
    kinds = sorted(m.type for m in analysis.matches)
    assert kinds == ["impersonation", "phishing", "tld"]
    assert {m.description for m in analysis.matches} == {
        "High-risk TLD .xyz",
        "Login verification pattern",
        "Security claim in domain",
    }


def test_clean_domain_scores_zero():
    analysis = ThreatAnalyzer().analyze("https://www.google.com/")

    assert analysis.domain == "google.com"
    assert analysis.threat_score == 0
    assert analysis.risk_level == RiskLevel.NONE
    assert analysis.matches == []


def test_pattern_groups_can_be_disabled():
    no_tld = ThreatAnalyzer(ThreatAnalyzerConfig(check_tld=False))
    assert no_tld.analyze("secure-login.new-phish.xyz").threat_score == 70

    off = ThreatAnalyzer(ThreatAnalyzerConfig(enabled=False))
    assert off.analyze("secure-login.new-phish.xyz").threat_score == 0


def test_infrastructure_patterns():
    analyzer = ThreatAnalyzer()

    random_sub = analyzer.analyze("a1b2c3d4e5f6g7h8i9.example.com")
    assert [m.type for m in random_sub.matches] == ["infrastructure"]
    assert random_sub.threat_score == 30

    ip_like = analyzer.analyze("192-168-1-1.example.com")
    assert ip_like.threat_score == 25
    assert ip_like.risk_level == RiskLevel.LOW


def test_has_threats_uses_min_score():
    analyzer = ThreatAnalyzer()
    assert analyzer.has_threats("secure-login.new-phish.xyz") is True
    assert analyzer.has_threats("google.com") is False
    assert analyzer.has_threats("192-168-1-1.example.com") is False

    strict = ThreatAnalyzer(ThreatAnalyzerConfig(min_score_to_report=20))
    assert strict.has_threats("192-168-1-1.example.com") is True


def test_analyze_multiple_keeps_order():
    results = ThreatAnalyzer().analyze_multiple(["google.com", "secure-login.new-phish.xyz"])
    assert [r.domain for r in results] == ["google.com", "secure-login.new-phish.xyz"]


def test_risk_level_thresholds():
    assert risk_level_for(80) == RiskLevel.CRITICAL
    assert risk_level_for(79) == RiskLevel.HIGH
    assert risk_level_for(40) == RiskLevel.MEDIUM
    assert risk_level_for(20) == RiskLevel.LOW
    assert risk_level_for(19) == RiskLevel.NONE
