# utils/resume.py

import logging
import math
import re

from models.models import ResumeAnalysis

STRONG_VERBS = [
    "achieved", "accelerated", "accomplished", "improved", "increased", "boosted",
    "decreased", "reduced", "managed", "led", "directed", "spearheaded", "pioneered",
    "developed", "created", "designed", "engineered", "architected", "built",
    "implemented", "launched", "deployed", "delivered", "established", "founded",
    "optimized", "streamlined", "automated", "transformed", "restructured",
    "generated", "exceeded", "surpassed", "collaborated", "partnered",
    "analyzed", "researched", "identified", "diagnosed", "resolved",
    "coordinated", "orchestrated", "executed", "initiated", "drove",
    "trained", "mentored", "coached", "facilitated",
]

WEAK_PHRASES = [
    "responsible for", "duties include", "worked on", "helped with", "assisted with",
    "involved in", "participated in", "tasked with", "in charge of",
]

EXTRA_WEAKNESSES = [
    "問題解決力や他の候補者との違いを示す具体例が不足しています。",
    "会社の規模・業界・プロジェクトの範囲といった文脈が不足しており、経験の重みが伝わりにくくなっています。",
    "担当業務の説明が中心で、成果の記述が不足しています。",
]

EXTRA_TIPS = [
    "応募ごとに内容を調整し、求人票のキーワードの6〜7割を盛り込みましょう。",
    "会社規模・予算・チーム人数・プロジェクト範囲などを添えて、責任の大きさを伝えましょう。",
    "箇条書きは「課題・行動・結果」の順で書き、結果は数値で示しましょう。",
    "ATSで読み取れるよう、表・テキストボックス・画像・特殊フォントは避けましょう。",
]

MAX_STRENGTHS = 5
MAX_WEAKNESSES = 4
MAX_TIPS = 6


def _count(pattern: str, text: str, flags: int = 0) -> int:
    return len(re.findall(pattern, text, flags))


def _matches(pattern: str, text: str, flags: int = re.IGNORECASE) -> bool:
    return re.search(pattern, text, flags) is not None


def _calibrate(score: float) -> int:
    # 高得点帯を圧縮し、28〜85点に収める
    if score > 85:
        score = 82 + (score - 85) * 0.2
    elif score > 75:
        score = 72 + (score - 75) * 0.6
    elif score > 65:
        score = 62 + (score - 65) * 0.8

    return max(28, min(math.floor(score + 0.5), 85))


def analyze_resume(text: str) -> ResumeAnalysis:
    strengths: list[str] = []
    weaknesses: list[str] = []
    tips: list[str] = []
    score = 0

    clean_text = text.lower()
    words = len(re.split(r"\s+", text))

    # 1. 分量 (20点)
    if 300 <= words <= 600:
        score += 20
        strengths.append(f"{words}語と、簡潔さと情報量のバランスが取れた分量です。")
    elif 200 <= words < 300:
        score += 14
        weaknesses.append(f"{words}語とやや短く、実績や担当範囲を十分に伝えきれていません。")
        tips.append("各職務に成果を含む箇条書きを3〜5個加え、全体で350〜500語を目安にしましょう。")
    elif 600 <= words <= 900:
        score += 16
        weaknesses.append(f"{words}語とやや長く、最初の数秒の確認で要点が埋もれる恐れがあります。")
        tips.append("重複する表現をまとめ、職務ごとに重要な実績2〜3個に絞り、400〜600語を目安にしましょう。")
    elif words > 900:
        score += 10
        weaknesses.append(f"{words}語と非常に長く、重要な情報が見落とされる可能性があります。")
        tips.append("直近10〜15年の実績に絞り、古い職歴は要約しましょう。")
    else:
        score += 8
        weaknesses.append(f"{words}語と非常に短く、経験や実績を評価するための情報が不足しています。")
        tips.append("職務ごとに3〜5個の箇条書きを加え、成果を数値で示し、300語以上を目安にしましょう。")

    # 2. 連絡先 (12点)
    contact_score = 0
    contact_missing = []
    if _matches(r"\b[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}\b", text):
        contact_score += 5
    else:
        contact_missing.append("メールアドレス")
    if _matches(r"(\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}", text, 0):
        contact_score += 4
    else:
        contact_missing.append("電話番号")
    if _matches(r"linkedin", text):
        contact_score += 2
    else:
        contact_missing.append("LinkedIn URL")
    if _matches(r"github|portfolio|website|personal site|behance|dribbble", text):
        contact_score += 1
    score += contact_score

    if contact_score >= 11:
        strengths.append("連絡先が揃っており、採用担当者が複数の手段で連絡できます。")
    elif contact_score >= 7:
        weaknesses.append(f"連絡先が不完全です ({'・'.join(contact_missing[:2])} がありません)。")
        tips.append("不足している連絡先を冒頭に追加しましょう。LinkedInのURLは特に効果的です。")
    else:
        weaknesses.append(f"重要な連絡先がありません ({'・'.join(contact_missing)})。")
        tips.append("最低限、メールアドレス・電話番号・LinkedIn URLを記載しましょう。")

    # 3. 定量的な実績 (28点)
    total_metrics = (
        _count(r"\d+%", text)
        + _count(r"\$[\d,]+[kmb]?", text, re.IGNORECASE)
        + _count(
            r"\d{2,}(?![\d%])\s*(?:user|customer|client|project|team member|employee|sale|lead|report|product)",
            text,
            re.IGNORECASE,
        )
        + _count(r"\d+x\s|grew\s+(?:by\s+)?\d+", text, re.IGNORECASE)
    )
    metrics_per_hundred_words = total_metrics / words * 100

    if total_metrics >= 8 and metrics_per_hundred_words >= 1.5:
        score += 28
        strengths.append(f"{total_metrics}個の具体的な数値で成果が示されており、影響の大きさが明確です。")
    elif total_metrics >= 5 and metrics_per_hundred_words >= 1.0:
        score += 22
        strengths.append(f"{total_metrics}個の数値で成果が裏付けられています。")
        tips.append("予算規模・チーム人数・改善率などの数値をあと2〜3個加えましょう。")
    elif total_metrics >= 3:
        score += 14
        weaknesses.append(f"数値で示された実績が{total_metrics}個と少なく、成果の大きさが伝わりにくくなっています。")
        tips.append("箇条書きの6〜7割に数値を入れましょう (例: 「表示速度を45%改善」)。")
    elif total_metrics >= 1:
        score += 8
        weaknesses.append(f"数値で示された実績が{total_metrics}個しかなく、職務説明のように読めてしまいます。")
        tips.append("すべての実績に「どれだけ・どのくらい速く・何%」を加えましょう。")
    else:
        score += 4
        weaknesses.append("数値で示された実績がありません。成果を評価する材料がない状態です。")
        tips.append("すべての箇条書きに数値を入れましょう。概算でも無いよりは効果があります。")

    # 4. 行動動詞と表現 (16点)
    verb_count = sum(_count(rf"\b{verb}\b", text, re.IGNORECASE) for verb in STRONG_VERBS)
    weak_phrase_count = sum(clean_text.count(phrase) for phrase in WEAK_PHRASES)

    if verb_count >= 12 and weak_phrase_count == 0:
        score += 16
        strengths.append(f"{verb_count}個の力強い行動動詞が使われ、受け身の表現がありません。")
    elif verb_count >= 8 and weak_phrase_count <= 1:
        score += 13
        strengths.append("行動動詞が適切に使われ、主体性が伝わる文章になっています。")
    elif verb_count >= 5:
        score += 9
        weaknesses.append(
            f"行動動詞の使用が{verb_count}個と中程度です。"
            + (f"「responsible for」などの弱い表現が{weak_phrase_count}個あります。" if weak_phrase_count else "")
        )
        tips.append("弱い表現を行動動詞に置き換えましょう (例: 「Responsible for managing a team」→「Led team of 8 engineers」)。")
    else:
        score += 5
        weaknesses.append(
            f"行動動詞が{verb_count}個、受け身の表現が{weak_phrase_count}個あり、職務説明のように読めてしまいます。"
        )
        tips.append("すべての箇条書きを行動動詞で始め、「responsible for」は使わないようにしましょう。")

    # 5. 必須セクション (18点)
    section_score = 0
    missing_sections = []
    if _matches(r"experience|work history|employment|career history|projects|portfolio|work samples", text):
        section_score += 8
    else:
        missing_sections.append("Experience/Projects")
    if _matches(r"education|academic|degree|university|college|pursuing|bvoc|btech|mtech|bachelor|master|phd", text):
        section_score += 6
    else:
        missing_sections.append("Education")
    if _matches(r"skills|competencies|expertise|proficiencies|technologies", text):
        section_score += 4
    else:
        missing_sections.append("Skills")
    score += section_score

    if section_score >= 17:
        strengths.append("必要なセクションがすべて揃い、情報を素早く見つけられる構成です。")
    elif section_score >= 12:
        weaknesses.append(f"{' と '.join(missing_sections)} セクションがありません。")
        tips.append(f"{missing_sections[0]} セクションを追加しましょう。")
    else:
        weaknesses.append(f"必須セクションがありません: {', '.join(missing_sections)}")
        tips.append("連絡先 → 概要 → 職歴 → 学歴 → スキル の順で構成しましょう。")

    # 6. 書式と読みやすさ (12点)
    bullet_points = _count(r"[•\-\*●○]\s", text)
    has_dates = _matches(
        r"\b(20\d{2}|19[89]\d)\b|\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\s+20\d{2}|\b(present|current)\b",
        text,
    )
    has_consistent_dates = _count(r"\b(?:20\d{2}|19[89]\d)\b", text) >= 2

    if bullet_points >= 10 and has_consistent_dates:
        score += 12
        strengths.append(f"{bullet_points}個の箇条書きと一貫した日付表記で、読みやすい書式です。")
    elif bullet_points >= 6 and has_dates:
        score += 9
        weaknesses.append("書式は及第点ですが、箇条書きや日付表記に改善の余地があります。")
        tips.append("職務ごとに3〜5個の箇条書きを使い、日付は「Jan 2020 - Present」のように統一しましょう。")
    elif bullet_points >= 3 or has_dates:
        score += 5
        weaknesses.append("箇条書きや日付が不足しており、読みにくい書式になっています。")
        tips.append("段落を箇条書きに分け、すべての職歴・学歴に日付を入れましょう。")
    else:
        score += 2
        weaknesses.append("箇条書き・日付・見出しがほとんどなく、非常に読みにくい書式です。")
        tips.append("全体を箇条書きに分け、各職歴に日付と明確なセクション見出しを付けましょう。")

    # 7. キーワード・ATS対策 (9点)
    technical_terms = re.findall(r"\b[A-Z]{2,}\b|\b[A-Z][a-z]+(?:[A-Z][a-z]+)+\b", text)
    industry_keywords = re.findall(
        r"\b(?:agile|scrum|devops|cloud|saas|api|database|analytics|strategy|leadership|stakeholder|roi|kpi"
        r"|automation|optimization|compliance|budget|revenue|customer|client|team|project management)\b",
        clean_text,
    )
    unique_keywords = len(set(technical_terms) | set(industry_keywords))

    if unique_keywords >= 18:
        score += 9
        strengths.append(f"{unique_keywords}個の業界キーワードがあり、ATSを通過しやすい内容です。")
    elif unique_keywords >= 10:
        score += 7
        tips.append("求人票に合わせて、関連する技術用語をあと5〜8個加えましょう。")
    elif unique_keywords >= 5:
        score += 4
        weaknesses.append(f"業界キーワードが{unique_keywords}個と少なく、ATSで除外される恐れがあります。")
        tips.append("応募先の求人票から共通するキーワードを拾い、経験の説明に自然に盛り込みましょう。")
    else:
        score += 2
        weaknesses.append("業界キーワードや技術用語がほとんどなく、ATSで除外される可能性が高い状態です。")
        tips.append("使用した技術・ツール・手法を求人票と同じ表記で記載しましょう。")

    # 減点
    pronouns = _count(r"\b(?:i\s|i'm|i've|my\s|me\s)", clean_text)
    if pronouns >= 5:
        score -= 10
        weaknesses.append(f"一人称 (I, my, me) が{pronouns}回使われています。")
        tips.append("一人称をすべて削除しましょう (例: 「I managed a team」→「Managed team」)。")
    elif pronouns >= 2:
        score -= 5
        weaknesses.append("一人称が含まれています。履歴書では主語を省略するのが一般的です。")
        tips.append("「I developed software」ではなく「Developed software」と書きましょう。")

    if _count(r"\b(?:recieve|occurence|seperaate|managment|experiance|sucessful|acheivement)\b", clean_text):
        score -= 7
        weaknesses.append("スペルミスが見つかりました。注意力不足と受け取られる恐れがあります。")
        tips.append("スペルチェックを使い、複数人に見直してもらいましょう。")

    fluff = _count(
        r"\b(?:hardworking|team player|detail-oriented|self-motivated|go-getter|passionate|innovative"
        r"|dynamic|results-driven|motivated|dedicated)\b",
        clean_text,
    )
    if fluff >= 5:
        score -= 4
        weaknesses.append("根拠のない決まり文句 (team player, detail-oriented など) が多用されています。")
        tips.append("決まり文句の代わりに、それを裏付ける具体的な実績を書きましょう。")

    # 加点
    summary_match = re.search(
        r"(professional summary|career summary|about|profile)[:\s]+([\s\S]*?)(?=\n\n|\nexperience|\neducation|\nskills)",
        text,
        re.IGNORECASE,
    )
    if summary_match and len(summary_match.group(2).split(" ")) >= 30:
        score += 3
        strengths.append("充実した職務概要があり、強みがすぐに伝わります。")

    if _matches(r"achievements|accomplishments|highlights|awards", text):
        score += 2
        strengths.append("実績・受賞のセクションで、特に優れた成果が目立っています。")

    if _count(r"senior|lead|principal|manager|director|head|chief|vp|vice president", text, re.IGNORECASE) >= 2:
        score += 2
        strengths.append("役職の変遷からキャリアの成長が読み取れます。")

    # フィードバックの最低件数を保証する
    if not strengths:
        if bullet_points >= 3:
            strengths.append("箇条書きが使われており、素早く読み取れる形式です。")
        elif words >= 200:
            strengths.append("職歴を理解するのに十分な情報量があります。")

    if len(weaknesses) < 2:
        for weakness in EXTRA_WEAKNESSES:
            if len(weaknesses) >= MAX_WEAKNESSES:
                break
            weaknesses.append(weakness)

    if len(tips) < 3:
        for tip in EXTRA_TIPS:
            if len(tips) >= MAX_TIPS:
                break
            tips.append(tip)

    final_score = _calibrate(score)
    logging.debug(
        f"Resume analysis: words={words}, metrics={total_metrics}, verbs={verb_count}, "
        f"raw_score={score}, score={final_score}"
    )

    return ResumeAnalysis(
        score=final_score,
        strengths=strengths[:MAX_STRENGTHS],
        weaknesses=weaknesses[:MAX_WEAKNESSES],
        tips=tips[:MAX_TIPS],
    )
