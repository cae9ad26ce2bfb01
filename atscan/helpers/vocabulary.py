import re

from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

from atscan.models.schemas import Category

# Words the stock English list drops that are halves of known compounds
# ("full stack", "front end", "computer science").
_DOMAIN_WORDS = {
    "full", "front", "back", "end", "system", "detail", "interest", "top",
    "bottom", "side", "part", "show", "call", "move", "fire", "find", "computer",
}

EXTRA_STOP_WORDS = {
    "also", "etc", "via", "per", "really", "just", "quite", "rather", "soon",
    "later", "shall", "must", "might", "could", "does", "did", "able", "within",
}

STOP_WORDS = {
    "english": frozenset((set(ENGLISH_STOP_WORDS) - _DOMAIN_WORDS) | EXTRA_STOP_WORDS),
}

# Canonical spelling of common technology names (exact, case-insensitive)
ALIASES = {
    "js": "JavaScript",
    "javascript": "JavaScript",
    "ecmascript": "JavaScript",
    "ts": "TypeScript",
    "typescript": "TypeScript",
    "nodejs": "Node.js",
    "node": "Node.js",
    "node.js": "Node.js",
    "reactjs": "React",
    "react.js": "React",
    "react": "React",
    "git": "Git",
    "github": "GitHub",
    "gitlab": "GitLab",
    "mysql": "MySQL",
    "postgresql": "PostgreSQL",
    "postgres": "PostgreSQL",
    "mongodb": "MongoDB",
    "mongo": "MongoDB",
    "aws": "AWS",
    "azure": "Microsoft Azure",
    "gcp": "Google Cloud Platform",
    "api": "API",
    "apis": "API",
    "rest": "REST API",
    "restful": "REST API",
    "graphql": "GraphQL",
    "sql": "SQL",
    "html": "HTML",
    "html5": "HTML",
    "css": "CSS",
    "css3": "CSS",
    "ui": "UI",
    "ux": "UX",
    "qa": "QA",
    "ci": "CI",
    "cd": "CD",
    "devops": "DevOps",
}

# Compound term -> separate parts (lowercase, after alias standardization)
COMPOUND_TERMS = {
    "amazon-web-services": ("amazon", "web", "services"),
    "full-stack": ("full", "stack"),
    "front-end": ("front", "end"),
    "back-end": ("back", "end"),
    "machine-learning": ("machine", "learning"),
    "deep-learning": ("deep", "learning"),
    "artificial-intelligence": ("artificial", "intelligence"),
    "data-science": ("data", "science"),
    "web-development": ("web", "development"),
    "software-engineering": ("software", "engineering"),
    "computer-science": ("computer", "science"),
    "user-experience": ("user", "experience"),
    "user-interface": ("user", "interface"),
    "quality-assurance": ("quality", "assurance"),
    "project-management": ("project", "management"),
    "product-management": ("product", "management"),
    "business-intelligence": ("business", "intelligence"),
    "cloud-computing": ("cloud", "computing"),
    "cyber-security": ("cyber", "security"),
    "information-technology": ("information", "technology"),
    "react-native": ("react", "native"),
    "visual-studio": ("visual", "studio"),
    "github-actions": ("github", "actions"),
    "google-cloud": ("google", "cloud"),
}

_MONTHS = (
    "jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec|january|february|march|april"
    "|june|july|august|september|october|november|december"
)
_DAYS = "mon|tue|wed|thu|fri|sat|sun|monday|tuesday|wednesday|thursday|friday|saturday|sunday"

# Applied to the lowercase token; any match drops it
NOISE_PATTERNS = [
    re.compile(r"^\d+$"),                                 # numbers, years
    re.compile(r"^\d{1,4}([/\-.]\d{1,4}){1,2}$"),         # 12/31, 01-2024, 31.12.2023
    re.compile(r"^\+?[\d\-()\s.]{5,}$"),                  # phone numbers
    re.compile(r"^[\w.%+\-]+@[\w.\-]+\.[a-z]{2,}$"),      # emails
    re.compile(rf"^({_MONTHS})\.?$"),
    re.compile(rf"^({_DAYS})\.?$"),
    re.compile(r"^\d*(st|nd|rd|th)$"),                    # ordinals
    re.compile(r"^(am|pm|inc|llc|ltd|corp|co|mr|mrs|ms|dr|prof)\.?$"),
    re.compile(r"^(?=[mdclxvi]+$)m{0,4}(cm|cd|d?c{0,3})(xc|xl|l?x{0,3})(ix|iv|v?i{0,3})$"),
    re.compile(r"^[a-z]$"),
    re.compile(r"^[^a-z]*$"),                             # no letters
]

# Real terms that happen to read as roman numerals; exempt from NOISE_PATTERNS
NOISE_EXCEPTIONS = frozenset({"cli", "mix"})

MIN_LETTER_RATIO = 0.5

# Category -> dictionary entries, already in matching form (lowercase, hyphen-separated)
KEYWORD_CATEGORIES = {
    Category.HARD_SKILLS: [
        # languages
        "javascript", "typescript", "python", "java", "c++", "c#", "php", "ruby", "go", "golang",
        "rust", "swift", "kotlin", "scala", "r", "matlab", "sql", "html", "css", "sass", "less",
        "dart", "elixir", "haskell", "clojure", "perl", "shell", "bash", "powershell",
        # frameworks
        "react", "react-native", "vue", "vue-js", "angular", "node-js", "express", "django",
        "flask", "fastapi", "spring", "spring-boot", "laravel", "rails", "ruby-on-rails",
        "asp-net", "next-js", "nuxt-js", "svelte", "ember", "jquery", "bootstrap", "tailwind",
        "redux", "flutter", "xamarin", "ionic", "unity",
        # data
        "mysql", "postgresql", "mongodb", "redis", "elasticsearch", "oracle", "sqlite",
        "cassandra", "dynamodb", "firebase", "supabase", "neo4j", "kafka", "airflow", "spark",
        "hadoop", "etl", "pandas", "numpy", "tensorflow", "pytorch", "scikit-learn",
        "machine-learning", "deep-learning", "artificial-intelligence", "data-science",
        "data-analysis", "data-visualization", "business-intelligence", "computer-science",
        # cloud and infrastructure
        "aws", "amazon-web-services", "microsoft-azure", "azure", "gcp", "google-cloud",
        "google-cloud-platform", "cloud-computing", "docker", "kubernetes", "jenkins",
        "terraform", "ansible", "chef", "puppet", "vagrant", "nginx", "apache", "prometheus",
        "grafana", "linux", "devops", "ci", "cd", "github-actions",
        # practices and interfaces
        "graphql", "rest", "rest-api", "api", "microservices", "serverless", "web-development",
        "software-engineering", "cyber-security", "quality-assurance", "ui", "ux",
        "user-experience", "user-interface", "jest", "cypress", "selenium", "playwright",
        "junit", "pytest", "mocha",
    ],
    Category.SOFT_SKILLS: [
        "leadership", "communication", "teamwork", "collaboration", "problem-solving",
        "analytical", "creative", "innovative", "innovation", "adaptable", "adaptability",
        "flexible", "flexibility", "organized", "detail-oriented", "time-management",
        "multitasking", "self-motivated", "proactive", "initiative", "critical-thinking",
        "decision-making", "negotiation", "presentation", "public-speaking", "mentoring",
        "coaching", "training", "customer-service", "client-facing", "stakeholder-management",
        "conflict-resolution", "empathy", "active-listening", "interpersonal",
        "project-management", "product-management",
    ],
    Category.JOB_TITLES: [
        "developer", "engineer", "programmer", "architect", "manager", "director", "lead",
        "senior", "junior", "principal", "staff", "consultant", "analyst", "specialist",
        "coordinator", "administrator", "designer", "researcher", "scientist", "technician",
        "intern", "frontend", "front-end", "backend", "back-end", "fullstack", "full-stack",
        "sre", "qe", "product-manager", "project-manager", "scrum-master", "product-owner",
        "tech-lead", "team-lead", "technical-writer",
    ],
    Category.CERTIFICATIONS: [
        "aws-certified", "azure-certified", "gcp-certified", "cissp", "cism", "cisa", "pmp",
        "csm", "psm", "certified-scrum-master", "certified-product-owner", "itil", "six-sigma",
        "lean-six-sigma", "comptia", "ccna", "ccnp", "cka", "ckad", "prince2", "togaf",
        "google-ads", "facebook-blueprint", "linkedin-certified",
    ],
    Category.TOOLS: [
        "visual-studio", "vscode", "intellij", "eclipse", "xcode", "android-studio",
        "sublime-text", "atom", "vim", "emacs", "notepad", "chrome", "firefox", "postman",
        "insomnia", "git", "github", "gitlab", "bitbucket", "svn", "jira", "confluence",
        "figma", "sketch", "photoshop", "illustrator", "tableau", "power-bi", "excel",
        "google-sheets", "google-analytics", "salesforce", "hubspot", "mailchimp", "wordpress",
        "shopify", "zoom", "teams", "slack", "discord", "notion", "trello", "asana", "miro",
    ],
}

FUZZY_THRESHOLD = 0.8

# Ordered inference rules for terms the dictionary does not know
PATTERN_RULES = [
    (Category.HARD_SKILLS, [
        re.compile(r"\.(js|ts|py|java|cpp|cs|php|rb|go|rs)$"),
        re.compile(r"^(api|sdk|cli|gui|ui|ux)$"),
        re.compile(r"\d+(\.\d+)?$"),
        re.compile(r"(framework|library|database|server|client)$"),
    ]),
    (Category.SOFT_SKILLS, [
        re.compile(r"(management|leadership|communication|collaboration)$"),
        re.compile(r"(creative|innovative|analytical|strategic)$"),
        re.compile(r"(oriented|focused|driven|minded)$"),
    ]),
    (Category.JOB_TITLES, [
        re.compile(r"(developer|engineer|manager|director|lead|senior|junior)$"),
        re.compile(r"(analyst|specialist|coordinator|administrator)$"),
        re.compile(r"^(head|chief|vp|vice)$"),
    ]),
    (Category.CERTIFICATIONS, [
        re.compile(r"(certified|certification|certificate)"),
        re.compile(r"^(cert|certs)$"),
    ]),
    (Category.TOOLS, [
        re.compile(r"(studio|ide)$"),
        re.compile(r"(tool|tools|toolkit)$"),
    ]),
]

# Priority ranker
KNOWN_TECH_PATTERNS = [
    re.compile(r"^(javascript|typescript|python|java|react|angular|vue|node|node\.js|express|spring|django|flask)$"),
    re.compile(r"^(aws|azure|gcp|docker|kubernetes|git|github|gitlab|jenkins|terraform)$"),
    re.compile(r"^(mysql|postgresql|mongodb|redis|elasticsearch|oracle|sqlite)$"),
]
PROFESSIONAL_SUFFIX = re.compile(
    r"(developer|engineer|architect|manager|analyst|specialist|consultant|lead|senior|junior)$"
)
PROFICIENCY_SUFFIX = re.compile(r"(experience|skilled|proficient|expert|advanced|intermediate|beginner)$")
RANKER_STOP_WORDS = frozenset(
    {"a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"}
)

# ESCO skills whose label reads like an instrument rather than a competence
TOOL_SKILL_PATTERN = re.compile(r"^(use|utilise|utilize|operate)\b|\b(tools?|studio|ide)\b")

# Industry label -> fragments looked up in validated canonical titles (first label wins)
INDUSTRY_KEYWORDS = [
    ("Information Technology", ("software", "computer", "programming", "ict")),
    ("Marketing & Sales", ("marketing", "sales", "advertising")),
    ("Finance & Accounting", ("finance", "accounting", "banking")),
    ("Healthcare", ("health", "medical", "nursing")),
    ("Education", ("education", "teaching", "training")),
    ("Engineering", ("engineering", "mechanical", "electrical")),
    ("Design & Creative", ("design", "creative", "art")),
    ("Management", ("management", "leadership", "administration")),
    ("Legal", ("legal", "law", "compliance")),
    ("Human Resources", ("human resources", "recruitment", "recruiting", "hr ")),
]
