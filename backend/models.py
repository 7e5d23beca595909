from pydantic import BaseModel, EmailStr, Field, ConfigDict, StrictStr
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class UserPlan(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    AFFILIATE_DEMO = "affiliate_demo"  # Admin-assignable; gated exactly like free

class FeatureTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"

class AccessState(str, Enum):
    LOADING = "loading"  # Profile not loaded yet; neither allowed nor denied
    DENIED = "denied"
    ALLOWED = "allowed"

class UserRole(str, Enum):
    ROLE_OWNER = "ROLE_OWNER"
    ROLE_USER = "ROLE_USER"

class PlanChangeSource(str, Enum):
    CHECKOUT = "checkout"
    ADMIN = "admin"
    WEBHOOK = "webhook"

class AuditAction(str, Enum):
    # Auth
    USER_SIGNUP = "USER_SIGNUP"
    USER_LOGIN_SUCCESS = "USER_LOGIN_SUCCESS"
    USER_LOGIN_FAILED = "USER_LOGIN_FAILED"

    # Plan state machine
    PLAN_CHANGED = "PLAN_CHANGED"

    # Profile
    PROFILE_UPDATED = "PROFILE_UPDATED"

    # Admin console
    ADMIN_PROFILE_EDITED = "ADMIN_PROFILE_EDITED"
    ADMIN_LAST_PAYMENT_OVERRIDE = "ADMIN_LAST_PAYMENT_OVERRIDE"
    ADMIN_ACCOUNT_DELETED = "ADMIN_ACCOUNT_DELETED"
    ROLE_GRANTED = "ROLE_GRANTED"
    ROLE_REVOKED = "ROLE_REVOKED"
    STORE_PRODUCT_CREATED = "STORE_PRODUCT_CREATED"
    STORE_PRODUCT_UPDATED = "STORE_PRODUCT_UPDATED"
    STORE_PRODUCT_DELETED = "STORE_PRODUCT_DELETED"

    # Access gate
    FEATURE_ACCESS_DENIED = "FEATURE_ACCESS_DENIED"

class AuditResource(str, Enum):
    USER = "user"
    FEATURE = "feature"
    ADMIN_ROLE = "admin_role"
    STORE_PRODUCT = "store_product"

class TradeSide(str, Enum):
    BUY = "compra"
    SELL = "venda"

class TradeResult(str, Enum):
    GAIN = "gain"
    LOSS = "loss"
    ZERO = "zero"

class PreTradeEmotion(str, Enum):
    CALM = "tranquilo"
    ANXIOUS = "ansioso"
    CONFIDENT = "confiante"
    TIRED = "cansado"

class TradingPeriod(str, Enum):
    MORNING = "manhã"
    AFTERNOON = "tarde"
    ALL_DAY = "o dia todo"

class ProductType(str, Enum):
    COURSE = "Curso"
    BOOK = "Livro"
    STRATEGY = "Estratégia"
    INDICATOR = "Indicador"
    OTHER = "Outro"

# Trader-profile quiz answers
class TradeFrequency(str, Enum):
    VERY_FREQUENT = "muito_frequente"
    FREQUENT = "frequente"
    SOMETIMES = "as_vezes"
    RARELY = "raramente"

class TimeHorizon(str, Enum):
    MINUTES = "minutos"
    HOURS = "horas"
    DAYS = "dias"
    WEEKS = "semanas"

class LossStreakReaction(str, Enum):
    CALM_FOLLOWS_PLAN = "calmo_plano"
    ANXIOUS_CONTINUES = "ansioso_continua"
    PAUSES = "para_um_tempo"
    CHASES_RECOVERY = "tenta_recuperar_rapido"

class DecisionBasis(str, Enum):
    TECHNICAL = "analise_tecnica"
    FUNDAMENTAL = "analise_fundamentalista"
    SENTIMENT = "sentimento_mercado"
    MIXED = "misto"

class ExperienceLevel(str, Enum):
    BEGINNER = "iniciante"
    INTERMEDIATE = "intermediario"
    ADVANCED = "avancado"

class MarketTime(str, Enum):
    OPEN = "abertura"
    MIDDAY = "meio_pregao"
    CLOSE = "fechamento"
    ANY = "qualquer_horario"
    AFTER_HOURS = "fora_horario_comercial"

# ============================================================================
# STORED DOCUMENTS
# ============================================================================

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class UserAccount(BaseModel):
    """Profile record in the `users` collection.

    `plan` is written only through services.plan_service.set_plan.
    """
    model_config = ConfigDict(extra="ignore")

    user_id: str
    email: EmailStr
    email_lower: str
    name: str
    whatsapp: Optional[str] = None
    cpf: Optional[str] = None
    plan: UserPlan = UserPlan.FREE
    member_since: datetime = Field(default_factory=_utcnow)
    last_payment: Optional[datetime] = None
    plan_updated_at: Optional[datetime] = None

class Credential(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: EmailStr
    email_lower: str
    password_hash: str
    created_at: datetime = Field(default_factory=_utcnow)

class AdminRole(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    email: Optional[str] = None
    role: UserRole = UserRole.ROLE_OWNER
    granted_at: datetime = Field(default_factory=_utcnow)
    granted_by: Optional[str] = None

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[UserRole] = None
    actor_id: Optional[str] = None
    resource_type: Optional[AuditResource] = None
    resource_id: Optional[str] = None
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    reason_code: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)

# ============================================================================
# AUTH
# ============================================================================

class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=1)
    whatsapp: Optional[str] = None
    cpf: Optional[str] = None

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str

# ============================================================================
# PROFILE / BILLING
# ============================================================================

class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    whatsapp: Optional[str] = None
    cpf: Optional[str] = None

class CheckoutRequest(BaseModel):
    plan: UserPlan

# ============================================================================
# PAYMENT WEBHOOK
# ============================================================================

class KirvanoWebhookPayload(BaseModel):
    """Body posted by Kirvano. Strict: no coercion of non-string values."""
    model_config = ConfigDict(extra="ignore")

    email: StrictStr = Field(min_length=1)
    status: StrictStr = Field(min_length=1)

# ============================================================================
# ADMIN CONSOLE
# ============================================================================

class AdminPlanUpdateRequest(BaseModel):
    # Plain str so unknown values reach set_plan and surface as InvalidPlan
    plan: str

class AdminProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    whatsapp: Optional[str] = None
    cpf: Optional[str] = None
    last_payment: Optional[datetime] = None

class RoleGrantRequest(BaseModel):
    user_id: str

class StoreProductRequest(BaseModel):
    name: str = Field(min_length=3)
    type: ProductType
    description: str = Field(min_length=10)
    short_description: str = Field(min_length=5, max_length=150)
    purchase_url: str
    image_url: Optional[str] = None
    price: float = Field(gt=0)

# ============================================================================
# TRADER FEATURES
# ============================================================================

class TradeCreate(BaseModel):
    asset: str = Field(min_length=1)
    type: TradeSide
    entry_price: float = Field(gt=0)
    exit_price: float = Field(gt=0)
    result: TradeResult
    stop_price: Optional[float] = None
    target_price: Optional[float] = None
    setup: Optional[str] = None
    emotion_before: int = Field(ge=0, le=10)
    emotion_after: int = Field(ge=0, le=10)
    comment: Optional[str] = None

class DailyPlanRequest(BaseModel):
    gain_goal: float
    loss_limit: float
    setups: List[str] = Field(default_factory=list)
    energy_level: int = Field(ge=0, le=10)
    emotion: PreTradeEmotion
    trading_period: TradingPeriod

class DailyPlanOutput(BaseModel):
    rules: str
    suggested_times: str
    focus_triggers: str
    no_trade_alert: str

class PsychologistRequest(BaseModel):
    feelings: str = Field(min_length=10)
    emotional_state: int = Field(ge=0, le=10)

class PsychologistOutput(BaseModel):
    advice: str

class RiskConfigRequest(BaseModel):
    available_capital: float = Field(gt=0)
    risk_per_trade_percent: float = Field(ge=0.1, le=100)
    daily_profit_target: float = Field(gt=0)
    daily_loss_limit: float = Field(gt=0)

class LotSizeRequest(BaseModel):
    stop_points: float = Field(gt=0)

class TraderProfileQuiz(BaseModel):
    preferred_frequency: TradeFrequency
    time_horizon: TimeHorizon
    risk_per_trade_percent: float = Field(ge=0.5, le=5)
    reaction_to_loss_streak: LossStreakReaction
    impulsiveness_scale: int = Field(ge=0, le=10)
    decision_basis: DecisionBasis
    experience_level: ExperienceLevel
    preferred_market_time: MarketTime

class TraderProfileOutput(BaseModel):
    trader_profile_type: str
    profile_description: str
    suggested_setups: List[str]
    suggested_asset_focus: List[str]
    risk_management_approach: str
    psychological_profile: str
    recommended_routine: str
    additional_advice: Optional[str] = None

class TradingSetupRequest(BaseModel):
    name: str = Field(min_length=1)
    rules: str = Field(min_length=10)
    trigger: str = Field(min_length=5)
    ideal_assets: str = Field(min_length=2)
    visual_example_description: Optional[str] = None

class TradingSetupExplanation(BaseModel):
    explanation: str
    suitability_analysis: str
    key_takeaways: List[str]

class SimulationRequest(BaseModel):
    discipline_score: int = Field(ge=0, le=100)
    technique_score: int = Field(ge=0, le=100)
    emotional_control_score: int = Field(ge=0, le=100)
    trades_made: int = Field(ge=0)
    simulation_length_minutes: int = Field(gt=0)
    profit_loss: float

class SimulationFeedback(BaseModel):
    feedback: str
