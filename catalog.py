"""
JIANGHU Engine v1.0 — Content Catalog
Read-only game content: scripted, branch and NPC events, the random pool,
achievements, the questionnaire, and the NPC cast.

Loaded once per process and injected into the engine. Nothing here is
mutated at runtime; session-local additions live on EventCatalog.
"""

from dataclasses import dataclass, field
from functools import lru_cache

from models import (
    GameEvent, EventOption, NPCRelationshipEffect, RandomEvent, RandomEventKind,
    Achievement, Question, QuestionOption,
    NPC, Agenda, AgendaGoal, AgendaTrigger, AgendaAction, ActionKind,
)


def _opt(id, description, effects, label=None, **kwargs) -> EventOption:
    return EventOption(id=id, label=label or id, description=description,
                       effects=effects, **kwargs)


# ─────────────────────────────────────────────────────
# SCRIPTED EVENTS (ids 1-10, one per round)
# ─────────────────────────────────────────────────────

SCRIPTED_EVENTS = (
    GameEvent(1, "入门试炼", "师父为你安排了入门试炼，考验你的基本功。你打算如何应对？", (
        _opt("A", "主动挑战高难度任务，展现实力", {"martial": 2, "energy": -1}),
        _opt("B", "稳妥完成基础要求", {"martial": 1, "network": 1}),
        _opt("C", "请教前辈，学习经验", {"martial": 1, "network": 2, "energy": -1}),
    )),
    GameEvent(2, "街市冲突", "街市上遇到恶霸欺负百姓，周围无人敢管。你会怎么做？", (
        _opt("A", "挺身而出，主持正义", {"martial": 2, "fame": 2, "energy": -2}),
        _opt("B", "旁观事态发展", {"energy": -1, "virtue": -1}),
        _opt("C", "劝和双方，化解矛盾", {"martial": 1, "network": 1}),
    )),
    GameEvent(3, "江湖任务", "接到一个危险的任务：潜入敌对势力的据点收集情报。", (
        _opt("A", "冒险潜入，亲自执行", {"martial": 3, "fame": 2, "energy": -2, "virtue": -1}),
        _opt("B", "委派信任的小弟前去", {"martial": 1, "network": 1, "energy": -1}),
        _opt("C", "认为风险太大，放弃任务", {"energy": 1, "virtue": 1, "fame": -1}),
    )),
    GameEvent(4, "结交盟友", "在酒馆遇到一位志同道合的侠客，似乎可以成为好友。", (
        _opt("A", "主动邀请结为兄弟", {"network": 3, "energy": -1}),
        _opt("B", "暗中帮助，建立好感", {"network": 2, "martial": 1, "energy": -1}),
        _opt("C", "保持距离，不轻易交心", {"energy": 1, "network": -1}),
    )),
    GameEvent(5, "师门考核", "师门举行年度考核，这是展现实力、提升地位的机会。", (
        _opt("A", "全力以赴，争取第一", {"martial": 3, "fame": 2, "energy": -2}),
        _opt("B", "正常发挥，稳中求胜", {"martial": 1, "network": 1}),
        _opt("C", "低调行事，保存实力", {"energy": 1, "virtue": 1, "fame": -1}),
    )),
    GameEvent(6, "江湖争端", "两大门派因误会即将大打出手，你恰好在场。", (
        _opt("A", "居中调解，化解恩怨", {"network": 2, "fame": 1, "energy": -1}),
        _opt("B", "帮助弱势一方，维护正义", {"martial": 2, "fame": 2, "energy": -2}),
        _opt("C", "明哲保身，远离纷争", {"energy": 1, "virtue": 1}),
    )),
    GameEvent(7, "秘密交易", "有人找你交易一本武功秘籍，但来源不明。", (
        _opt("A", "接受交易，提升武艺", {"martial": 2, "fame": -1, "network": 1, "energy": -1}),
        _opt("B", "上报门派，秉公处理", {"martial": 1, "fame": 2, "network": 1}),
        _opt("C", "拒绝诱惑，无视此事", {"energy": 1, "virtue": 1}),
    )),
    GameEvent(8, "突发灾难", "村庄遭遇山贼袭击，百姓四处逃散，财物散落一地。", (
        _opt("A", "奋勇救人，击退山贼", {"martial": 2, "fame": 2, "energy": -2, "virtue": 1}),
        _opt("B", "保护重要财物，减少损失", {"martial": 1, "network": 1, "energy": -1}),
        _opt("C", "避开危险，寻找援军", {"energy": 1, "virtue": 1}),
    )),
    GameEvent(9, "盟友请求", "你的好友陷入困境，急需你的帮助。", (
        _opt("A", "义无反顾，全力相助", {"martial": 2, "network": 3, "energy": -1}),
        _opt("B", "量力而行，适度协助", {"martial": 1, "network": 1, "energy": -1}),
        _opt("C", "委婉拒绝，自身难保", {"virtue": 1, "network": -2}),
    )),
    GameEvent(10, "江湖大会", "江湖召开武林大会，各路英雄汇聚一堂。这是展现实力、建立名望的最佳时机。", (
        _opt("A", "全力展示，争夺魁首", {"martial": 3, "fame": 3, "energy": -2, "virtue": 1}),
        _opt("B", "稳妥发挥，结交好友", {"martial": 1, "fame": 1, "energy": -1}),
        _opt("C", "低调观赛，学习他人", {"energy": 1, "virtue": 1}),
    )),
)


# ─────────────────────────────────────────────────────
# BRANCH EVENTS (justice path, keyed by round index)
# ─────────────────────────────────────────────────────

BRANCH_EVENTS = {
    5: GameEvent(6001, "英雄的担当",
                 "由于你之前的正义行为，各路豪杰都相信你的为人。现在两大门派冲突，所有人都希望你能出面调解。", (
        _opt("A", "承担起英雄的责任，全力调解",
             {"martial": 2, "fame": 3, "network": 2, "virtue": 2, "energy": -2}),
        _opt("B", "谨慎行事，先了解情况再做决定",
             {"martial": 1, "fame": 1, "network": 1, "virtue": 1, "energy": -1}),
        _opt("C", "召集其他正义之士共同解决",
             {"martial": 1, "fame": 2, "network": 3, "virtue": 1, "energy": -2}),
    )),
    8: GameEvent(6002, "侠义召集令",
                 "你的正义之声传遍江湖，多位英雄响应你的号召，准备共同行动。这时有消息说一群无辜村民被匪徒围困。", (
        _opt("A", "立即带队前往救援，展现英雄本色",
             {"martial": 3, "fame": 3, "virtue": 2, "energy": -3}),
        _opt("B", "制定周密计划，确保万无一失",
             {"martial": 1, "fame": 2, "virtue": 1, "network": 1, "energy": -2}),
        _opt("C", "先派出斥候侦察，再做决定",
             {"martial": 1, "fame": 1, "virtue": 1, "energy": -1}),
    )),
    9: GameEvent(6003, "武林盟主挑战",
                 "江湖大会召开，由于你的威望和正义行为，各路高手一致推举你为武林盟主候选人。这是你一统江湖、匡扶正义的最佳机会！", (
        _opt("A", "接受挑战，争夺武林盟主之位",
             {"martial": 4, "fame": 4, "virtue": 2, "energy": -3}),
        _opt("B", "谦虚推辞，但承诺继续维护江湖正义",
             {"martial": 2, "fame": 3, "virtue": 3, "energy": -2}),
        _opt("C", "提议建立武林联盟，共同维护江湖和平",
             {"martial": 2, "fame": 3, "network": 3, "virtue": 2, "energy": -2}),
    )),
}


# ─────────────────────────────────────────────────────
# NPC EVENTS (柳师兄, npc004)
# ─────────────────────────────────────────────────────

LIU_ID = "npc004"
LIU_NAME = "柳师兄"


def _liu(change: int, reason: str) -> tuple:
    return (NPCRelationshipEffect(LIU_ID, LIU_NAME, change, reason),)


NPC_EVENTS = {
    1001: GameEvent(1001, "柳师兄的邀约",
                    "柳师兄主动找到了你，眼中带着欣赏的光芒。\"师弟，我看你为人不错，想在师门中多交些朋友吗？\"", (
        _opt("A", "感谢柳师兄的好意，多一个朋友多一条路",
             {"network": 2, "virtue": 1, "fame": 1}, label="欣然接受",
             npc_effects=_liu(3, "欣然接受柳师兄的交友提议"),
             consequences=("柳师兄会记住你的友善，未来可能会提供更多帮助",
                           "建立了良好的人脉基础，有助于师门内的发展")),
        _opt("B", "表示感谢但需要时间考虑",
             {"network": 1, "virtue": 1}, label="谨慎考虑",
             npc_effects=_liu(1, "对柳师兄的提议持保留态度"),
             consequences=("柳师兄理解你的谨慎，关系略有提升",
                           "未来仍有机会进一步发展关系")),
        _opt("C", "婉言谢绝，表示目前想专心修炼",
             {"martial": 1, "virtue": 1, "network": -1}, label="礼貌拒绝",
             npc_effects=_liu(-2, "拒绝柳师兄的交友提议"),
             consequences=("柳师兄对你的选择感到失望，关系有所下降",
                           "专注于修炼可能会影响人脉发展")),
    )),
    1002: GameEvent(1002, "柳师兄的提拔",
                    "柳师兄找到你，神色严肃地说：\"师弟，掌门正在寻找可靠的弟子负责一些重要事务。我觉得你很适合这个机会，要不要试试？\"", (
        _opt("A", "感谢柳师兄的信任，愿意承担这个责任",
             {"martial": 2, "fame": 2, "network": 1, "virtue": 1}, label="接受提拔",
             npc_effects=_liu(4, "接受柳师兄的提拔机会"),
             requires_confirmation=True,
             consequences=("柳师兄会更加信任你，可能提供更多重要机会",
                           "承担重要责任将提升你在师门的地位",
                           "但也可能承担更大的风险和压力")),
        _opt("B", "先了解具体是什么事务，再做决定",
             {"network": 2, "fame": 1, "virtue": 1}, label="询问详情",
             npc_effects=_liu(2, "谨慎询问柳师兄关于事务的详情"),
             consequences=("柳师兄欣赏你的谨慎，关系更加稳固",
                           "了解更多信息有助于做出更好的决策")),
        _opt("C", "感谢看重，但觉得自己资历尚浅",
             {"martial": 1, "virtue": 2, "fame": -1}, label="委婉拒绝",
             npc_effects=_liu(-3, "拒绝柳师兄的提拔机会"),
             consequences=("柳师兄对你的拒绝感到失望，可能会影响未来的机会",
                           "谦逊的态度值得赞赏，但也可能错失重要机会")),
    )),
    1003: GameEvent(1003, "柳师兄的真面目",
                    "在一个月黑风高的夜晚，你意外发现了柳师兄的秘密。原来他一直在利用你达到自己的目的...面对真相，你选择如何应对？", (
        _opt("A", "直接与柳师兄对质，要求一个解释",
             {"martial": -2, "fame": -3, "network": -2, "virtue": 2}, label="当面质问",
             npc_effects=_liu(-6, "当面质问柳师兄的背叛行为"),
             requires_confirmation=True,
             consequences=("直接对抗可能彻底破裂关系",
                           "但也展现了你的正直和勇气",
                           "可能会引起师门其他人的关注")),
        _opt("B", "不动声色，收集更多证据后再做决定",
             {"network": -1, "virtue": 1, "martial": 1}, label="暗中收集证据",
             npc_effects=_liu(-3, "暗中调查柳师兄的秘密"),
             consequences=("谨慎的收集证据可能会让你掌握主动权",
                           "但也有被发现的风险，后果可能更严重")),
        _opt("C", "继续装作什么都不知道，静观其变",
             {"martial": -1, "network": 1, "virtue": -1}, label="假装不知",
             npc_effects=_liu(-2, "假装不知道柳师兄的真面目"),
             consequences=("暂时的平静可能换来更大的危机",
                           "道德上的妥协可能会影响你的侠义之心")),
        _opt("D", "向师父或其他可信的人求助",
             {"fame": -2, "network": -1, "virtue": 3}, label="寻求帮助",
             npc_effects=_liu(-5, "向他人揭发柳师兄的行为"),
             requires_confirmation=True,
             consequences=("维护正义可能会失去一些虚假的关系",
                           "但会赢得真正的信任和尊重",
                           "可能面临师门内部的复杂局面")),
    )),
}

# (event id, option id) -> (relationship delta, reason, flag to set)
NPC_EVENT_CONSEQUENCES = {
    (1001, "A"): (2, "接受柳师兄的帮助", "owed_help_npc004"),
    (1002, "A"): (3, "接受柳师兄的提拔", None),
    (1002, "C"): (-1, "拒绝柳师兄的提拔", None),
    (1003, "A"): (-3, "当面质问柳师兄", None),
    (1003, "D"): (-4, "向他人求助", None),
}


# ─────────────────────────────────────────────────────
# RANDOM EVENT POOL
# ─────────────────────────────────────────────────────

_B, _S, _T = RandomEventKind.BATTLE, RandomEventKind.SOCIAL, RandomEventKind.STRATEGY
_N, _M, _X = RandomEventKind.NATURAL, RandomEventKind.MYSTERY, RandomEventKind.NEGATIVE

RANDOM_POOL = (
    RandomEvent("re-battle-1", _B, "山林遇袭",
                "行经山林时遭遇劫匪伏击，经过一番激战，你成功击退了对方。",
                {"martial": 2, "energy": -2, "virtue": 1}),
    RandomEvent("re-battle-2", _B, "切磋比武",
                "路遇一位武林高手主动邀请切磋，你在对决中学到了不少东西。",
                {"martial": 3, "energy": -3, "fame": 1}),
    RandomEvent("re-battle-3", _B, "街头斗殴",
                "目睹一场不公平的战斗，你出手相助弱者，虽然消耗不少内力，但赢得了赞誉。",
                {"martial": 1, "fame": 1, "energy": -2, "virtue": 1}),
    RandomEvent("re-social-1", _S, "酒馆结识",
                "在酒馆与几位侠客把酒言欢，结下了深厚的友谊。",
                {"network": 2, "fame": 1, "energy": -1}),
    RandomEvent("re-social-2", _S, "帮派宴席",
                "受邀参加某帮派的宴席，认识了不少江湖朋友，人脉大增。",
                {"network": 3, "fame": 2, "energy": -1}),
    RandomEvent("re-social-3", _S, "拜访名宿",
                "拜访了一位德高望重的江湖前辈，获得了宝贵的指点和人脉资源。",
                {"network": 2, "virtue": 1, "energy": -1}),
    RandomEvent("re-strategy-1", _T, "商队护送",
                "接受商队护送任务，途中巧妙化解了几次危机，获得了丰厚报酬和名声。",
                {"martial": 1, "fame": 2, "network": 1, "energy": -1}),
    RandomEvent("re-strategy-2", _T, "调解纷争",
                "成功调解了两个门派之间的矛盾，展现出色的智慧和公正。",
                {"fame": 2, "network": 2, "energy": -1}),
    RandomEvent("re-strategy-3", _T, "识破阴谋",
                "察觉到针对你的阴谋并成功化解，虽然消耗精力，但保住了声誉。",
                {"virtue": 1, "fame": 1, "network": -1, "energy": -1}),
    RandomEvent("re-natural-1", _N, "山洪突袭",
                "遇到山洪暴发，在救援百姓的过程中体力严重透支。",
                {"virtue": 1, "fame": 1, "energy": -3}),
    RandomEvent("re-natural-2", _N, "瘟疫蔓延",
                "村庄爆发瘟疫，你协助医者救治病患，消耗了大量精力但赢得民心。",
                {"fame": 2, "virtue": 1, "energy": -2}),
    RandomEvent("re-natural-3", _N, "意外受伤",
                "训练时不慎受伤，需要休养一段时间。",
                {"energy": -2, "martial": -1}),
    RandomEvent("re-mystery-1", _M, "古洞奇遇",
                "偶然发现一处古洞，在洞中获得了一本武功秘籍。",
                {"martial": 3, "fame": 1, "energy": 1}),
    RandomEvent("re-mystery-2", _M, "高人指点",
                "巧遇隐世高人，获得醍醐灌顶般的指点，功力大增。",
                {"martial": 2, "virtue": 2, "energy": 1}),
    RandomEvent("re-mystery-3", _M, "灵药相助",
                "意外得到一株珍贵灵药，服用后内力大涨。",
                {"energy": 2, "martial": 1, "fame": 1}),
    RandomEvent("re-negative-1", _X, "遭人暗算",
                "仇家在你的茶水中暗下毒药，虽无性命之忧，却元气大伤。",
                {"energy": -2, "martial": -1}),
    RandomEvent("re-negative-2", _X, "流言蜚语",
                "江湖上流传着关于你的不实传言，不少旧识开始疏远你。",
                {"fame": -2, "network": -1}),
    RandomEvent("re-negative-3", _X, "行囊被盗",
                "投宿客栈时行囊被盗，只得放下身段四处求助。",
                {"network": -1, "energy": -1, "virtue": 1}),
)

NPC_RANDOM_EVENTS = {
    LIU_ID: (
        RandomEvent("liu_random_1", _S, "柳师兄的关心",
                    "柳师兄看到你训练辛苦，主动给你递来水和毛巾。\"师弟，不要太勉强自己，适度休息也很重要。\"",
                    {"energy": 1, "virtue": 1, "network": 1}),
        RandomEvent("liu_random_2", _T, "柳师兄的建议",
                    "柳师兄找到你讨论师门的策略：\"我觉得我们可以在下个月的门派大比中这样安排...\"",
                    {"martial": 1, "network": 2, "fame": 1}),
        RandomEvent("liu_random_3", _B, "柳师兄的切磋",
                    "柳师兄邀请你进行切磋训练：\"来，让我看看你最近的进步如何。\"",
                    {"martial": 2, "energy": -1, "network": 1}),
    ),
}


# ─────────────────────────────────────────────────────
# ACHIEVEMENTS
# ─────────────────────────────────────────────────────

def _balanced(s) -> bool:
    return min(s.martial, s.fame, s.network, s.energy, s.virtue) >= 6


ACHIEVEMENTS = (
    Achievement("ach-beginner", "初出江湖", "武艺达到5点或以上",
                lambda s: s.martial >= 5, {"fame": 1}),
    Achievement("ach-virtuous", "义薄云天", "侠义值达到8点或以上",
                lambda s: s.virtue >= 8, {"network": 2}),
    Achievement("ach-famous", "名震江湖", "威望达到15点或以上",
                lambda s: s.fame >= 15, {"fame": 2, "martial": 1}),
    Achievement("ach-connected", "结交广泛", "人脉达到10点或以上",
                lambda s: s.network >= 10, {"network": 2, "fame": 1}),
    Achievement("ach-energetic", "疾风内力", "内力达到5点或以上",
                lambda s: s.energy >= 5, {"energy": 1}),
    Achievement("ach-balanced", "全面发展", "所有属性均达到6点或以上",
                _balanced, {"martial": 2, "fame": 2, "network": 2, "energy": 2, "virtue": 2}),
    Achievement("ach-master", "武林宗师", "武艺达到12点或以上",
                lambda s: s.martial >= 12, {"martial": 3, "fame": 2}),
    Achievement("ach-legend", "江湖传奇", "威望达到20点或以上",
                lambda s: s.fame >= 20, {"fame": 5, "martial": 2, "network": 2}),
)


# ─────────────────────────────────────────────────────
# QUESTIONNAIRE
# ─────────────────────────────────────────────────────

def _q(value, label, description, effects) -> QuestionOption:
    return QuestionOption(value=value, label=label, description=description, effects=effects)


QUESTIONNAIRE = (
    Question("background", "你的身份背景是？", (
        _q("scholar", "普通书生", "饱读诗书，文质彬彬", {"virtue": 2, "network": 1, "martial": -1}),
        _q("merchant", "小商贩", "经商多年，人脉广泛", {"network": 3, "fame": 1, "virtue": -1}),
        _q("family", "武林世家", "出身名门，武艺超群", {"martial": 3, "fame": 2, "network": -1}),
    )),
    Question("personality", "你的性格类型是？", (
        _q("extrovert", "外向型", "善于交际，活泼开朗", {"network": 2, "energy": 1}),
        _q("introvert", "内向型", "沉稳内敛，深思熟虑", {"virtue": 2, "energy": 1}),
        _q("resilient", "坚毅型", "意志坚定，百折不挠", {"martial": 2, "energy": 2}),
        _q("cautious", "谨慎型", "行事谨慎，稳扎稳打", {"virtue": 1, "fame": 1, "energy": 1}),
    )),
    Question("ambition", "你的江湖抱负是？", (
        _q("test", "小试牛刀", "初探江湖，见识世面", {"energy": 2, "virtue": 1}),
        _q("fame", "立名江湖", "扬名立万，名震四方", {"fame": 3, "martial": 1}),
        _q("peace", "追求安稳", "平安度日，与世无争", {"virtue": 2, "energy": 2}),
    )),
    Question("age", "你的年龄是？", (
        _q("18-22", "18-22岁", "年轻气盛，活力充沛", {"energy": 2, "martial": 1}),
        _q("23-25", "23-25岁", "年富力强，经验丰富", {"virtue": 1, "fame": 1, "network": 1}),
    )),
    Question("talent", "你的兴趣特长是？", (
        _q("martial", "武艺", "精通拳脚，剑术超群", {"martial": 3, "fame": 1}),
        _q("strategy", "谋略", "智谋过人，深谋远虑", {"virtue": 2, "fame": 1}),
        _q("social", "交际", "能言善辩，八面玲珑", {"network": 3, "fame": 1}),
    )),
)


# ─────────────────────────────────────────────────────
# NPC CAST
# ─────────────────────────────────────────────────────

def _liu_stats_trigger(ctx) -> bool:
    stats = ctx.player.stats
    return stats.fame >= 6 or stats.network >= 5


NPCS = (
    NPC(
        id="npc001", name="掌门", title="师门掌门",
        description="师门的最高领袖，武功盖世，为人正直，对弟子要求严格但内心关爱。",
        relationship=10, traits=("威严", "正直", "关爱弟子", "武艺高强"),
        agenda=Agenda(id="npc001_agenda", priority=5, goals=(
            AgendaGoal("train_disciples", "培养弟子成才", 20),
        )),
    ),
    NPC(
        id="npc002", name="大师兄", title="首座弟子",
        description="掌门的大弟子，为人稳重可靠，武艺精湛，经常指导师弟师妹们。",
        relationship=8, traits=("稳重", "可靠", "热心指导", "武艺精湛"),
        agenda=Agenda(id="npc002_agenda", priority=3, goals=(
            AgendaGoal("guide_juniors", "指导师弟师妹", 15),
        )),
    ),
    NPC(
        id="npc003", name="药王", title="医术宗师",
        description="师门中的医术高手，精通药理，虽然性格古怪但心地善良，经常帮助受伤的弟子。",
        relationship=6, traits=("古怪", "心地善良", "医术高明", "乐于助人"),
        agenda=Agenda(id="npc003_agenda", priority=2, goals=(
            AgendaGoal("heal_disciples", "救治受伤弟子", 12),
        )),
    ),
    NPC(
        id=LIU_ID, name=LIU_NAME, title="师门师兄",
        description="在师门中颇有声望的师兄，为人热心但精于算计，似乎对你格外关注。",
        relationship=5, traits=("热心", "有野心", "重情义", "精于算计"),
        agenda=Agenda(
            id="liu_shixiong_agenda", priority=1,
            goals=(
                AgendaGoal("cultivate_protagonist", "扶持主角成长", 10, kind="relationship"),
                AgendaGoal("strengthen_faction", "增强师门派系势力", 15, kind="stats"),
            ),
            triggers=(
                AgendaTrigger("player_stats", _liu_stats_trigger),
                AgendaTrigger("round", lambda ctx: ctx.round >= 9, threshold=9),
            ),
            actions=(
                AgendaAction("offer_help", ActionKind.HELP, "柳师兄的指点",
                             "师弟，我看你天资不错，我来指点你几招。",
                             {"relationship": 3}, {"martial": 1, "network": 1}),
                AgendaAction("request_favor", ActionKind.REQUEST, "柳师兄的请求",
                             "师弟，有个小忙需要你帮一下...",
                             {"relationship": 5}, {"virtue": 1}),
                AgendaAction("betrayal", ActionKind.CONFLICT, "柳师兄的真面目",
                             "原来他一直都在利用你...",
                             {"relationship": -2}, {"martial": -3, "fame": -3, "network": -2}),
            ),
        ),
    ),
)

NPC_TEMPLATES = {
    "mentor": {"title": "师父", "traits": ("严厉", "慈爱", "智慧"), "priority": 2},
    "rival": {"title": "竞争对手", "traits": ("嫉妒", "好胜", "狡猾"), "priority": 3},
    "friend": {"title": "好友", "traits": ("忠诚", "义气", "开朗"), "priority": 1},
}


def npc_from_template(template: str, npc_id: str, name: str,
                      relationship: int = 0, description: str = "") -> NPC:
    """Build an NPC from one of the mentor/rival/friend templates."""
    tpl = NPC_TEMPLATES[template]
    return NPC(
        id=npc_id, name=name, title=tpl["title"], description=description,
        relationship=relationship, traits=tpl["traits"],
        agenda=Agenda(id=f"{npc_id}_agenda", priority=tpl["priority"]),
    )


# ─────────────────────────────────────────────────────
# CATALOG
# ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Catalog:
    scripted_events: tuple = SCRIPTED_EVENTS
    branch_events: dict = field(default_factory=lambda: dict(BRANCH_EVENTS))
    npc_events: dict = field(default_factory=lambda: dict(NPC_EVENTS))
    npc_event_consequences: dict = field(default_factory=lambda: dict(NPC_EVENT_CONSEQUENCES))
    random_pool: tuple = RANDOM_POOL
    npc_random_events: dict = field(default_factory=lambda: dict(NPC_RANDOM_EVENTS))
    achievements: tuple = ACHIEVEMENTS
    questionnaire: tuple = QUESTIONNAIRE
    npcs: tuple = NPCS

    def question(self, question_id: str):
        for q in self.questionnaire:
            if q.id == question_id:
                return q
        return None

    def npc(self, npc_id: str):
        for npc in self.npcs:
            if npc.id == npc_id:
                return npc
        return None

    def npc_by_name(self, name: str):
        for npc in self.npcs:
            if npc.name == name:
                return npc
        return None


@lru_cache(maxsize=1)
def default_catalog() -> Catalog:
    return Catalog()
