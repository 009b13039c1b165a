"""Offline expert profile synthesis.

When the generator cannot produce an expert profile in time (or the circuit
breaker is open), the predictor falls back to a profile derived from the expert
name alone. Resolution order:

1. exact match against the known-expert table (English names and Japanese aliases)
2. partial match (the name contains a known title, or vice versa)
3. keyword-based domain classification
4. a generic template built around the last token of the name

Everything here is pure: the same name always yields the same profile, and every
field of the result is populated.
"""

import re

from futurecast.core.schemas import ExpertiseLevel, ExpertPrediction

EXPERT = ExpertiseLevel.EXPERT
SENIOR = ExpertiseLevel.SENIOR


KNOWN_EXPERTS: dict[str, ExpertPrediction] = {
    # AI & technology
    "AI Researcher": ExpertPrediction(
        role="Specialist in next-generation AI and its deployment in society",
        specialization="AGI, quantum AI and neural interface technology",
        expertise_level=EXPERT,
        sub_specializations=[
            "Artificial general intelligence",
            "Quantum machine learning",
            "Brain-computer interfaces",
        ],
        information_sources=["Nature Machine Intelligence", "MIT Technology Review", "Frontier lab research reports"],
        research_focus="Deployment of AGI in the 2030s and its impact on labour markets",
    ),
    "AI Engineer": ExpertPrediction(
        role="Specialist in AI implementation and operations platforms",
        specialization="Enterprise AI, MLOps and AI ethics",
        expertise_level=EXPERT,
        sub_specializations=["Large language model operations", "AI safety and ethics", "Edge AI optimization"],
        information_sources=["CNCF AI reports", "NVIDIA technology briefings", "AI ethics guidelines"],
        research_focus="Building enterprise AI platforms and competitive advantage through 2040",
    ),
    "Data Scientist": ExpertPrediction(
        role="Specialist in predictive analytics and decision-support systems",
        specialization="Real-time analytics, causal inference and predictive modelling",
        expertise_level=EXPERT,
        sub_specializations=["Causal machine learning", "Streaming analytics", "Simulation-based forecasting"],
        information_sources=["KDD proceedings", "McKinsey Analytics", "Gartner forecasts"],
        research_focus="Automated decision-making and human-AI collaboration models in 2050",
    ),
    # Business & management
    "Management Consultant": ExpertPrediction(
        role="Specialist in digital transformation and long-range strategy design",
        specialization="Sustainable management, resilient organizations and emerging-market strategy",
        expertise_level=SENIOR,
        sub_specializations=["Circular economy transition", "Geopolitical risk response", "Stakeholder capitalism"],
        information_sources=["BCG Future of Work", "WEF Global Risks Report", "PwC CEO Survey"],
        research_focus="Geopolitical shifts in the 2030s and long-term corporate competitive strategy",
    ),
    "Economist": ExpertPrediction(
        role="Specialist in macroeconomics and changes to the international financial system",
        specialization="Digital currency, emerging economies and climate economics",
        expertise_level=EXPERT,
        sub_specializations=["Central bank digital currencies", "Decarbonization economics", "Emerging-market financial integration"],
        information_sources=["IMF World Economic Outlook", "BIS Annual Economic Report", "Climate Policy Initiative"],
        research_focus="Reorganization of the international financial system by 2040 and corporate finance strategy",
    ),
    "Investment Analyst": ExpertPrediction(
        role="Specialist in emerging assets, ESG investing and technology valuation",
        specialization="Quantum technology, space economy and biotech valuation",
        expertise_level=EXPERT,
        sub_specializations=["Quantum computing markets", "Commercial space investment", "Synthetic biology valuation"],
        information_sources=["Goldman Sachs research", "ARK Invest research", "Nature Biotechnology"],
        research_focus="Investment opportunities in disruptive technology and value creation through 2050",
    ),
    # Design & UX
    "Designer": ExpertPrediction(
        role="Specialist in next-generation interfaces and experience design",
        specialization="Spatial UI, neural interfaces and affective design",
        expertise_level=EXPERT,
        sub_specializations=["AR/VR spatial interfaces", "Brain-signal UX", "Emotion-aware experience design"],
        information_sources=["Apple Human Interface Guidelines", "Meta Reality Labs research", "MIT Media Lab"],
        research_focus="Immersive experiences and the evolution of human-centred design in the 2030s",
    ),
    "UX Designer": ExpertPrediction(
        role="Specialist in behavioural science, cognitive load and accessibility",
        specialization="Universal design, AI-assisted UX and ageing-society design",
        expertise_level=EXPERT,
        sub_specializations=["Cognitive accessibility", "Human-AI collaborative interfaces", "Multi-generational experience design"],
        information_sources=["W3C accessibility guidelines", "Nielsen Norman Group", "Adobe UX trends"],
        research_focus="Inclusive technology for a super-aged society in 2040",
    ),
    # Engineering
    "Engineer": ExpertPrediction(
        role="Specialist in infrastructure, security and distributed systems",
        specialization="Quantum cryptography, edge computing and autonomous systems",
        expertise_level=EXPERT,
        sub_specializations=["Quantum-safe communication", "Distributed edge AI", "Self-healing systems"],
        information_sources=["IEEE Computer Society", "NIST Cybersecurity Framework", "Linux Foundation reports"],
        research_focus="Responding to quantum threats and designing next-generation infrastructure in the 2030s",
    ),
    "IT Consultant": ExpertPrediction(
        role="Specialist in enterprise transformation and cloud strategy",
        specialization="Legacy modernization, hybrid cloud and DevSecOps",
        expertise_level=SENIOR,
        sub_specializations=["Mainframe modernization", "Multi-cloud strategy", "Zero-trust implementation"],
        information_sources=["Gartner IT roadmaps", "Forrester cloud strategy", "Red Hat enterprise trends"],
        research_focus="Enterprise IT foundations and competitive advantage in 2040",
    ),
    # Marketing
    "Marketing Specialist": ExpertPrediction(
        role="Specialist in personalization and omnichannel strategy",
        specialization="AI-driven marketing, virtual commerce and Gen Z engagement",
        expertise_level=EXPERT,
        sub_specializations=["Real-time personalization", "Virtual-space commerce", "Behavioural prediction marketing"],
        information_sources=["HubSpot State of Marketing", "Salesforce State of the Connected Customer", "Adobe Digital Economy Index"],
        research_focus="Consumer behaviour change and brand experience design in the 2030s",
    ),
    # Sustainability
    "Environmental Specialist": ExpertPrediction(
        role="Specialist in climate change, resource circulation and ecosystem conservation",
        specialization="Carbon neutrality, circular economy and biodiversity",
        expertise_level=EXPERT,
        sub_specializations=["Direct air capture", "Bio-based materials", "Ecosystem service valuation"],
        information_sources=["IPCC Assessment Reports", "Ellen MacArthur Foundation", "Nature Climate Change"],
        research_focus="Corporate strategy and innovation for reaching net zero by 2050",
    ),
    # Healthcare
    "Medical Specialist": ExpertPrediction(
        role="Specialist in digital, preventive and precision medicine",
        specialization="Telemedicine, AI diagnostics and personalized treatment",
        expertise_level=EXPERT,
        sub_specializations=["Wearable diagnostics", "Genomic medicine", "AI-assisted drug discovery"],
        information_sources=["New England Journal of Medicine", "Nature Medicine", "WHO digital health reports"],
        research_focus="Prevention-centred healthcare and healthy-lifespan technology in 2040",
    ),
    # Education
    "Education Specialist": ExpertPrediction(
        role="Specialist in future skills, lifelong learning and AI-assisted education",
        specialization="Personalized learning, VR education and skills forecasting",
        expertise_level=EXPERT,
        sub_specializations=["Adaptive learning systems", "Virtual practice environments", "Future skills forecasting"],
        information_sources=["MIT Open Learning", "Khan Academy research", "OECD education reports"],
        research_focus="Labour market change and continuous skill development in the 2030s",
    ),
    # Law & regulation
    "Legal Specialist": ExpertPrediction(
        role="Specialist in technology law, data governance and international regulation",
        specialization="AI regulation, privacy and cross-border data transfer",
        expertise_level=EXPERT,
        sub_specializations=["AI liability law", "Post-quantum cryptography regulation", "International data governance"],
        information_sources=["EU AI Act", "GDPR enforcement reports", "Stanford HAI policy research"],
        research_focus="International regulatory harmonization and corporate compliance strategy in 2040",
    ),
}

# Japanese job titles mapped onto the English templates
KNOWN_EXPERT_ALIASES: dict[str, str] = {
    "AI研究者": "AI Researcher",
    "AIエンジニア": "AI Engineer",
    "データサイエンティスト": "Data Scientist",
    "経営コンサルタント": "Management Consultant",
    "経済学者": "Economist",
    "投資アナリスト": "Investment Analyst",
    "デザイナー": "Designer",
    "UXデザイナー": "UX Designer",
    "技術者": "Engineer",
    "ITコンサルタント": "IT Consultant",
    "マーケティング専門家": "Marketing Specialist",
    "環境専門家": "Environmental Specialist",
    "医療専門家": "Medical Specialist",
    "教育専門家": "Education Specialist",
    "法務専門家": "Legal Specialist",
}


class _DomainProfile:
    """Keyword-classified profile; the role is prefixed with the expert name."""

    def __init__(
        self,
        keywords: tuple[str, ...],
        description: str,
        specialization: str,
        sub_specializations: list[str],
        information_sources: list[str],
        research_focus: str,
    ):
        self.keywords = tuple(k.lower() for k in keywords)
        self.description = description
        self.specialization = specialization
        self.sub_specializations = sub_specializations
        self.information_sources = information_sources
        self.research_focus = research_focus

    def matches(self, name_lower: str) -> bool:
        return any(_keyword_in(name_lower, keyword) for keyword in self.keywords)


# Checked in order; the first matching domain wins
DOMAIN_PROFILES: tuple[_DomainProfile, ...] = (
    _DomainProfile(
        ("ev", "electric vehicle", "battery", "charging", "電気自動車", "バッテリー", "充電"),
        "electric vehicle and next-generation mobility specialist",
        "EV adoption strategy, charging infrastructure, battery technology and autonomous driving",
        ["EV battery technology", "Charging infrastructure", "Autonomous driving systems"],
        ["EV market analyses", "Battery technology outlooks", "Mobility industry surveys"],
        "Full EV adoption and transport system transformation in 2030-2040",
    ),
    _DomainProfile(
        ("gas", "energy", "power", "utility", "ガス", "エネルギー", "電力", "電気"),
        "energy, power systems and decarbonization specialist",
        "Renewable energy, smart grids and carbon neutrality",
        ["Renewable integration", "Energy storage systems", "Decarbonization strategy"],
        ["IEA World Energy Outlook", "Renewable energy statistics", "Decarbonization technology reports"],
        "Carbon neutrality by 2050 and the restructuring of the energy industry",
    ),
    _DomainProfile(
        ("sports", "writer", "journalist", "media", "スポーツ", "ライター", "記者", "メディア"),
        "sports business, media and entertainment specialist",
        "Sports tech, fan experience, digital content and broadcast rights",
        ["Sports data analytics", "Fan engagement", "Digital distribution strategy"],
        ["Sports industry reports", "Media technology trends", "Entertainment market research"],
        "Innovation in sports experiences and media industry change in the 2030s",
    ),
    _DomainProfile(
        ("automotive", "manufacturing", "factory", "production", "自動車", "製造", "工場", "生産"),
        "automotive, manufacturing and Industry 4.0 specialist",
        "Smart factories, automation, supply chains and quality management",
        ["IoT manufacturing systems", "Robotic automation", "Predictive maintenance"],
        ["Manufacturing DX case studies", "Automation technology trends", "Supply chain analyses"],
        "Fully automated factories and manufacturing restructuring by 2040",
    ),
    _DomainProfile(
        ("medical", "health", "hospital", "pharma", "doctor", "nurse", "医療", "健康", "病院", "薬", "医師", "看護"),
        "healthcare and digital medicine specialist",
        "Telemedicine, AI diagnostics, personalized and preventive medicine",
        ["Remote care systems", "AI medical imaging", "Predictive medicine"],
        ["Medical technology societies", "Digital health trends", "Regulatory approval trends"],
        "Healthcare DX and the spread of personalized medicine in the 2030s",
    ),
    _DomainProfile(
        ("education", "learning", "teacher", "hr", "recruiting", "talent", "教育", "学習", "人事", "採用"),
        "education, talent development and organizational learning specialist",
        "EdTech, skill development, remote learning and talent strategy",
        ["Online learning platforms", "Skills-based hiring", "Continuous learning systems"],
        ["Education technology research", "Talent development trends", "Labour market analyses"],
        "Changing ways of working and the evolution of talent development by 2040",
    ),
    _DomainProfile(
        ("ai", "artificial intelligence", "machine learning", "dx", "人工知能", "機械学習"),
        "AI, applied machine learning and digital transformation specialist",
        "AI implementation, data science, automation and DX strategy",
        ["Machine learning model design", "Data pipeline engineering", "AI ethics and safety"],
        ["AI research papers", "Technology conferences", "Industry benchmarks"],
        "AI deployment in society and industrial transformation in 2030-2040",
    ),
    _DomainProfile(
        ("data", "analyst", "statistics", "analytics", "データ", "アナリスト", "統計", "分析"),
        "data analysis, predictive modelling and business intelligence specialist",
        "Statistical analysis, predictive models, data strategy and decision support",
        ["Predictive analytics models", "Real-time dashboards", "Statistical causal inference"],
        ["Statistical society reports", "Data science research", "Industry trend surveys"],
        "Data-driven decision-making and automation in the 2030s",
    ),
    _DomainProfile(
        ("marketing", "sales", "advertising", "brand", "マーケティング", "営業", "販売", "広告"),
        "digital marketing, customer experience and brand strategy specialist",
        "Omnichannel strategy, personalization and ROI optimization",
        ["Customer behaviour analysis", "Multi-touch attribution", "Real-time optimization"],
        ["Marketing technology trends", "Consumer behaviour research", "Digital advertising measurement"],
        "Evolution of consumer touchpoints and brand experience strategy in 2040",
    ),
    _DomainProfile(
        ("management", "strategy", "consultant", "ceo", "executive", "president", "経営", "戦略", "コンサル", "社長", "役員"),
        "corporate strategy, executive decision-making and organizational change specialist",
        "Digital transformation, organizational resilience, sustainable management and business strategy",
        ["Business portfolio strategy", "Organizational agility", "Stakeholder value creation"],
        ["Strategy consulting research", "Organizational behaviour studies", "Industry structure analyses"],
        "Industrial realignment in 2030-2050 and building long-term competitive advantage",
    ),
    _DomainProfile(
        ("technology", "engineer", "developer", "development", "system", "技術", "エンジニア", "開発", "システム"),
        "next-generation technology, systems design and infrastructure specialist",
        "Cloud native, security, scalable design and technology strategy",
        ["Distributed systems design", "Security architecture", "Performance optimization"],
        ["Standards bodies", "Open source communities", "System design case studies"],
        "Evolution of technology foundations and enterprise systems strategy by 2040",
    ),
    _DomainProfile(
        ("finance", "investment", "economics", "economist", "banking", "bank", "金融", "投資", "経済", "財務", "銀行"),
        "financial markets, investment strategy and economic trends specialist",
        "Fintech, digital assets, risk management and ESG investing",
        ["Crypto-asset valuation", "ESG investment strategy", "Financial technology innovation"],
        ["Central bank reports", "Financial market data", "Fintech trends"],
        "Transformation of the financial system and corporate finance strategy by 2040",
    ),
    _DomainProfile(
        ("logistics", "supply chain", "procurement", "delivery", "物流", "サプライ", "調達", "配送"),
        "supply chain, logistics and procurement strategy specialist",
        "Digital logistics, automation, traceability and risk management",
        ["Logistics automation", "Inventory optimization", "Supply chain visibility"],
        ["Logistics industry reports", "SCM technology trends", "Trade and tariff outlooks"],
        "Automated logistics and the rebuilding of global supply chains in the 2030s",
    ),
)

_TOKEN_SPLIT = re.compile(r"[\s・\-_]+")
_DEFAULT_FIELD = "industry"


def _keyword_in(name_lower: str, keyword: str) -> bool:
    # ASCII keywords match whole words so "ev" does not fire on "developer"
    if keyword.isascii():
        return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", name_lower) is not None
    return keyword in name_lower


def _with_name(expert_name: str, description: str) -> str:
    return f"{expert_name} - {description}" if expert_name else description


def _exact_match(expert_name: str) -> ExpertPrediction | None:
    key = KNOWN_EXPERT_ALIASES.get(expert_name, expert_name)
    template = KNOWN_EXPERTS.get(key)
    if template is None:
        # Case-insensitive lookup for the English titles
        lowered = expert_name.lower()
        for title, candidate in KNOWN_EXPERTS.items():
            if title.lower() == lowered:
                return candidate.model_copy(deep=True)
        return None
    return template.model_copy(deep=True)


def _partial_match(expert_name: str) -> ExpertPrediction | None:
    lowered = expert_name.lower()
    candidates = [(title, title) for title in KNOWN_EXPERTS]
    candidates += [(alias, title) for alias, title in KNOWN_EXPERT_ALIASES.items()]
    # Longest title first so "UX Designer" wins over "Designer"
    candidates.sort(key=lambda pair: len(pair[0]), reverse=True)

    for label, title in candidates:
        label_lower = label.lower()
        if label_lower in lowered or (len(lowered) >= 2 and lowered in label_lower):
            template = KNOWN_EXPERTS[title]
            return template.model_copy(
                update={"role": _with_name(expert_name, template.role)}, deep=True
            )
    return None


def _domain_match(expert_name: str) -> ExpertPrediction | None:
    lowered = expert_name.lower()
    for profile in DOMAIN_PROFILES:
        if profile.matches(lowered):
            return ExpertPrediction(
                role=_with_name(expert_name, profile.description),
                specialization=profile.specialization,
                expertise_level=EXPERT,
                sub_specializations=list(profile.sub_specializations),
                information_sources=list(profile.information_sources),
                research_focus=profile.research_focus,
            )
    return None


def _generic_profile(expert_name: str) -> ExpertPrediction:
    tokens = [token for token in _TOKEN_SPLIT.split(expert_name) if token]
    field = tokens[-1] if tokens else _DEFAULT_FIELD
    return ExpertPrediction(
        role=_with_name(expert_name, f"{field} sector trends and strategy specialist"),
        specialization="Industry trend analysis, competitive strategy, innovation assessment and market forecasting",
        expertise_level=EXPERT,
        sub_specializations=[f"{field} industry analysis", "Competitive strategy research", "Emerging technology assessment"],
        information_sources=[f"{field} industry reports", "Market research data", "Trade journals and academic societies"],
        research_focus=f"Technology and market change in the {field} field in 2030-2050 and the strategic opportunities it opens",
    )


def synthesize_expert_prediction(expert_name: str) -> ExpertPrediction:
    """
    Derive a plausible expert profile from the name alone.

    Args:
        expert_name: Name or title of the expert (any string, including empty)

    Returns:
        ExpertPrediction with every field populated
    """
    name = (expert_name or "").strip()

    if name:
        for resolver in (_exact_match, _partial_match, _domain_match):
            prediction = resolver(name)
            if prediction is not None:
                return prediction

    return _generic_profile(name)
