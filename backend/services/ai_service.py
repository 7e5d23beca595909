"""
Trader coaching prompts (daily plan, psychologist, trader profile, setup
explanations, simulation feedback).

Each generator builds a Portuguese prompt from the validated request and asks
utils.llm_chat.chat_json for a reply matching the output model. Errors from the
LLM layer (LLMNotConfiguredError, LLMResponseError) propagate to the route.
"""
import logging

from models import (
    DailyPlanOutput, DailyPlanRequest, PsychologistOutput, PsychologistRequest,
    SimulationFeedback, SimulationRequest, TraderProfileOutput, TraderProfileQuiz,
    TradingSetupExplanation, TradingSetupRequest
)
from utils.llm_chat import chat_json

logger = logging.getLogger(__name__)


DAILY_PLAN_PROMPT = """Você é um assistente de trading IA que ajuda traders a criar um plano de trading diário.
Responda sempre em Português do Brasil.
Considere os objetivos do trader, tolerância ao risco, nível de energia e estado emocional.
Gere: regras de trading para o dia (rules), horários sugeridos (suggested_times),
gatilhos mentais para foco (focus_triggers) e um alerta para não operar se necessário (no_trade_alert)."""

PSYCHOLOGIST_PROMPT = """Você é um psicólogo IA especializado em apoiar traders.
Responda sempre em Português do Brasil.
Com base nos sentimentos e no estado emocional do trader, ofereça frases de apoio,
reforço racional e recomendações comportamentais no campo advice."""

TRADER_PROFILE_PROMPT = """Você é um coach de trading e psicólogo comportamental que classifica perfis de traders.
Responda sempre em Português do Brasil.
A partir das respostas do questionário: identifique o perfil predominante (ex: Scalper,
Day Trader de Tendência, Swing Trader, Position Trader, Trader Conservador, Trader Arrojado),
descreva-o em 2-3 frases, sugira 3-4 setups e focos de ativos, uma abordagem de
gerenciamento de risco, o perfil psicológico, uma rotina recomendada e, opcionalmente,
um conselho adicional. Seja construtivo e prático."""

TRADING_SETUP_PROMPT = """Você é um analista de mercado e coach de trading experiente, especializado em explicar setups de trading.
Responda sempre em Português do Brasil.
Analise o setup informado pelo usuário e forneça: uma explicação detalhada (explanation) com a lógica,
prós e contras e o gerenciamento de risco do setup (stop loss, alvos); uma análise de adequação
(suitability_analysis) para perfis de trader e condições de mercado; e de 3 a 5 pontos chave (key_takeaways).
Se a descrição for vaga, aproveite o que houver e aponte o que precisa de mais clareza."""

SIMULATION_PROMPT = """Você é um coach de trading dando feedback a um trader após uma simulação.
Responda sempre em Português do Brasil.
Com base no desempenho, comente disciplina, técnica e controle emocional, destaque onde o trader
se saiu bem e sugira ações específicas de melhoria no campo feedback. Seja encorajador e construtivo."""


def _daily_plan_input(request: DailyPlanRequest) -> str:
    return "\n".join([
        f"Meta de Ganho: {request.gain_goal}",
        f"Limite de Perda: {request.loss_limit}",
        f"Setups: {', '.join(request.setups) or 'nenhum informado'}",
        f"Nível de Energia (0-10): {request.energy_level}",
        f"Emoção: {request.emotion.value}",
        f"Período de Trading: {request.trading_period.value}",
    ])


def _trader_profile_input(quiz: TraderProfileQuiz) -> str:
    return "\n".join([
        f"Frequência de Operação Preferida: {quiz.preferred_frequency.value}",
        f"Horizonte de Tempo por Operação: {quiz.time_horizon.value}",
        f"Risco Percentual por Operação: {quiz.risk_per_trade_percent}%",
        f"Reação a Sequência de Perdas: {quiz.reaction_to_loss_streak.value}",
        f"Nível de Impulsividade (0-10): {quiz.impulsiveness_scale}",
        f"Base para Decisões: {quiz.decision_basis.value}",
        f"Nível de Experiência: {quiz.experience_level.value}",
        f"Horário Preferido para Operar: {quiz.preferred_market_time.value}",
    ])


def _trading_setup_input(request: TradingSetupRequest) -> str:
    return "\n".join([
        f"Nome do Setup: {request.name}",
        f"Regras Detalhadas: {request.rules}",
        f"Gatilho de Entrada: {request.trigger}",
        f"Ativos/Mercados Ideais: {request.ideal_assets}",
        f"Exemplo Visual: {request.visual_example_description or 'não informado'}",
    ])


async def generate_daily_plan(request: DailyPlanRequest) -> DailyPlanOutput:
    return await chat_json(DAILY_PLAN_PROMPT, _daily_plan_input(request), DailyPlanOutput)


async def get_psychologist_advice(request: PsychologistRequest) -> PsychologistOutput:
    user_text = f"Sentimentos: {request.feelings}\nEstado Emocional (0-10): {request.emotional_state}"
    return await chat_json(PSYCHOLOGIST_PROMPT, user_text, PsychologistOutput)


async def classify_trader_profile(quiz: TraderProfileQuiz) -> TraderProfileOutput:
    result = await chat_json(TRADER_PROFILE_PROMPT, _trader_profile_input(quiz), TraderProfileOutput)
    logger.info(f"Trader profile classified as {result.trader_profile_type}")
    return result


async def explain_trading_setup(request: TradingSetupRequest) -> TradingSetupExplanation:
    return await chat_json(TRADING_SETUP_PROMPT, _trading_setup_input(request), TradingSetupExplanation)


async def evaluate_simulation(request: SimulationRequest) -> SimulationFeedback:
    user_text = "\n".join([
        f"Disciplina (0-100): {request.discipline_score}",
        f"Técnica (0-100): {request.technique_score}",
        f"Controle Emocional (0-100): {request.emotional_control_score}",
        f"Operações Realizadas: {request.trades_made}",
        f"Duração (minutos): {request.simulation_length_minutes}",
        f"Resultado: {request.profit_loss}",
    ])
    return await chat_json(SIMULATION_PROMPT, user_text, SimulationFeedback)
